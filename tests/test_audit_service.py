from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from backoffice.db import transaction
from backoffice.models import JobView
from backoffice.services import audit_service, fulfillment_service, job_service

from db_support import make_session_factory, seed_fixture


class RecordViewTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.fx = seed_fixture(self.db)
        self.job = job_service.create_job_list(self.db, title='Haftalık alım', created_by_principal_id=self.fx.admin_id)
        self.db.commit()
        self.t0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def tearDown(self) -> None:
        self.db.close()

    def _view(self, principal_id: int, at: datetime) -> bool:
        recorded = audit_service.record_view(self.db, job_list_id=self.job.id, principal_id=principal_id, now=at)
        self.db.commit()
        return recorded

    def _view_count(self) -> int:
        return self.db.execute(select(func.count(JobView.id))).scalar_one()

    def test_views_within_the_hour_are_deduplicated(self) -> None:
        self.assertTrue(self._view(self.fx.user_id, self.t0))
        self.assertFalse(self._view(self.fx.user_id, self.t0 + timedelta(minutes=59)))
        self.assertEqual(self._view_count(), 1)

        self.assertTrue(self._view(self.fx.user_id, self.t0 + timedelta(minutes=61)))
        self.assertEqual(self._view_count(), 2)

    def test_each_principal_gets_its_own_window(self) -> None:
        self.assertTrue(self._view(self.fx.user_id, self.t0))
        self.assertTrue(self._view(self.fx.admin_id, self.t0 + timedelta(minutes=5)))
        self.assertEqual(self._view_count(), 2)

        views = audit_service.list_views(self.db, job_list_id=self.job.id)
        self.assertEqual([view.username for view in views], ['admin', 'depo1'])
        self.assertEqual(views[0].viewed_at, self.t0 + timedelta(minutes=5))

    def test_storage_failure_is_swallowed(self) -> None:
        failure = OperationalError('SELECT job_views', {}, Exception('connection lost'))
        with patch('backoffice.services.audit_service._latest_view_at', side_effect=failure):
            recorded = audit_service.record_view(self.db, job_list_id=self.job.id, principal_id=self.fx.user_id)

        self.assertFalse(recorded)
        # The outer transaction is still usable.
        job_service.create_job_list(self.db, title='Sonraki iş', created_by_principal_id=self.fx.user_id)
        self.db.commit()
        self.assertEqual(self._view_count(), 0)


class DeletionLogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.fx = seed_fixture(self.db)
        self.job = job_service.create_job_list(self.db, title='Tamir listesi', created_by_principal_id=self.fx.admin_id)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_deletions_are_listed_newest_first(self) -> None:
        first = job_service.add_item(self.db, job_id=self.job.id, custom_name='Boya', source_id=self.fx.external_source_id)
        second = job_service.add_item(
            self.db, job_id=self.job.id, product_id=self.fx.product_id, source_id=self.fx.internal_source_id, quantity=2
        )
        self.db.commit()

        t0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        with transaction(self.db):
            fulfillment_service.delete_item(self.db, item_id=first.id, actor_id=self.fx.user_id, now=t0)
        with transaction(self.db):
            fulfillment_service.delete_item(
                self.db, item_id=second.id, actor_id=self.fx.admin_id, reason='fazla', now=t0 + timedelta(minutes=1)
            )

        entries = audit_service.list_deletions(self.db, job_list_id=self.job.id)
        self.assertEqual([entry.product_name for entry in entries], ['Vida 4x40', 'Boya'])
        self.assertEqual(entries[0].deleted_by_username, 'admin')
        self.assertEqual(entries[0].reason, 'fazla')
        self.assertEqual(entries[1].source_name, 'Market')
        self.assertIsNone(entries[1].reason)

    def test_deletion_log_outlives_the_job_list(self) -> None:
        item = job_service.add_item(self.db, job_id=self.job.id, custom_name='Boya', source_id=self.fx.external_source_id)
        self.db.commit()
        with transaction(self.db):
            fulfillment_service.delete_item(self.db, item_id=item.id, actor_id=self.fx.user_id)
        with transaction(self.db):
            job_service.delete_job_list(self.db, job_id=self.job.id)

        entries = audit_service.list_deletions(self.db, job_list_id=self.job.id)
        self.assertEqual(len(entries), 1)


if __name__ == '__main__':
    unittest.main()
