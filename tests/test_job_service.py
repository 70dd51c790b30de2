from __future__ import annotations

import unittest

from sqlalchemy import func, select

from backoffice.db import transaction
from backoffice.errors import ItemValidationError, NotFoundError
from backoffice.models import JobItem, Source
from backoffice.services import fulfillment_service, job_service, source_service

from db_support import make_session_factory, seed_fixture


class JobServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.fx = seed_fixture(self.db)
        self.job = job_service.create_job_list(self.db, title='  Depo sayımı  ', created_by_principal_id=self.fx.admin_id)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_create_job_list_defaults_to_pending(self) -> None:
        self.assertEqual(self.job.title, 'Depo sayımı')
        self.assertEqual(self.job.status, 'pending')
        self.assertEqual(self.job.creator_name, 'Admin')

        with self.assertRaises(ItemValidationError):
            job_service.create_job_list(self.db, title='   ', created_by_principal_id=self.fx.admin_id)

    def test_add_item_requires_exactly_one_of_product_or_name(self) -> None:
        with self.assertRaises(ItemValidationError):
            job_service.add_item(self.db, job_id=self.job.id, source_id=self.fx.internal_source_id)
        with self.assertRaises(ItemValidationError):
            job_service.add_item(
                self.db,
                job_id=self.job.id,
                product_id=self.fx.product_id,
                custom_name='Vida',
                source_id=self.fx.internal_source_id,
            )

    def test_add_item_requires_source_and_positive_quantity(self) -> None:
        with self.assertRaises(ItemValidationError):
            job_service.add_item(self.db, job_id=self.job.id, custom_name='Boya')
        with self.assertRaises(ItemValidationError):
            job_service.add_item(self.db, job_id=self.job.id, custom_name='Boya', source_id=self.fx.external_source_id, quantity=0)
        with self.assertRaises(NotFoundError):
            job_service.add_item(self.db, job_id=self.job.id, custom_name='Boya', source_id=404)
        with self.assertRaises(NotFoundError):
            job_service.add_item(self.db, job_id=404, custom_name='Boya', source_id=self.fx.external_source_id)
        with self.assertRaises(NotFoundError):
            job_service.add_item(self.db, job_id=self.job.id, product_id=404, source_id=self.fx.internal_source_id)

    def test_add_item_rejects_source_id_and_source_name_together(self) -> None:
        with self.assertRaises(ItemValidationError):
            job_service.add_item(
                self.db,
                job_id=self.job.id,
                custom_name='Boya',
                source_id=self.fx.external_source_id,
                source_name='Nalbur',
            )
        count = self.db.execute(select(func.count(Source.id)).where(Source.name == 'Nalbur')).scalar_one()
        self.assertEqual(count, 0)

    def test_add_item_defaults(self) -> None:
        custom = job_service.add_item(self.db, job_id=self.job.id, custom_name=' Boya ', source_id=self.fx.external_source_id)
        self.assertEqual(custom.quantity, 1)
        self.assertEqual(custom.custom_name, 'Boya')
        self.assertEqual(custom.display_name, 'Boya')
        self.assertIsNone(custom.unit)
        self.assertEqual(custom.state, 'open')

        stocked = job_service.add_item(
            self.db, job_id=self.job.id, product_id=self.fx.product_id, source_id=self.fx.internal_source_id, quantity=4
        )
        self.assertEqual(stocked.unit, 'adet')
        self.assertEqual(stocked.display_name, 'Vida 4x40')

    def test_add_item_by_source_name(self) -> None:
        item = job_service.add_item(self.db, job_id=self.job.id, custom_name='Kablo', source_name='Elektrikçi')
        self.db.commit()
        source = self.db.execute(select(Source).where(Source.id == item.source_id)).scalar_one()
        self.assertEqual(source.name, 'Elektrikçi')

    def test_detail_groups_items_by_source(self) -> None:
        job_service.add_item(self.db, job_id=self.job.id, custom_name='Boya', source_id=self.fx.external_source_id)
        checked = job_service.add_item(
            self.db, job_id=self.job.id, product_id=self.fx.product_id, source_id=self.fx.internal_source_id
        )
        job_service.add_item(self.db, job_id=self.job.id, custom_name='Fırça', source_id=self.fx.external_source_id)
        self.db.commit()
        with transaction(self.db):
            fulfillment_service.check_item(self.db, item_id=checked.id, actor_id=self.fx.user_id)

        detail = job_service.get_job_detail(self.db, job_id=self.job.id)
        self.assertEqual(detail.job.item_count, 3)
        self.assertEqual(detail.job.checked_count, 1)
        self.assertEqual([group.source.name for group in detail.grouped_items], ['Market', 'Depo'])
        self.assertEqual([item.display_name for item in detail.grouped_items[0].items], ['Boya', 'Fırça'])

        listed = job_service.list_job_lists(self.db)
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0].item_count, 3)
        self.assertEqual(listed[0].checked_count, 1)

    def test_update_status(self) -> None:
        updated = job_service.update_job_status(self.db, job_id=self.job.id, status='processing')
        self.assertEqual(updated.status, 'processing')
        with self.assertRaises(ItemValidationError):
            job_service.update_job_status(self.db, job_id=self.job.id, status='archived')
        with self.assertRaises(NotFoundError):
            job_service.update_job_status(self.db, job_id=404, status='completed')

    def test_delete_job_list_removes_items(self) -> None:
        job_service.add_item(self.db, job_id=self.job.id, custom_name='Boya', source_id=self.fx.external_source_id)
        self.db.commit()
        with transaction(self.db):
            job_service.delete_job_list(self.db, job_id=self.job.id)

        remaining = self.db.execute(select(func.count(JobItem.id))).scalar_one()
        self.assertEqual(remaining, 0)
        with self.assertRaises(NotFoundError):
            job_service.get_job_detail(self.db, job_id=self.job.id)


class SourceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.fx = seed_fixture(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_resolve_by_name_is_idempotent(self) -> None:
        first = source_service.resolve_source_by_name(self.db, '  Nalbur ')
        second = source_service.resolve_source_by_name(self.db, 'Nalbur')
        self.db.commit()
        self.assertEqual(first.id, second.id)
        self.assertEqual(first.type.value, 'external')
        count = self.db.execute(select(func.count(Source.id)).where(Source.name == 'Nalbur')).scalar_one()
        self.assertEqual(count, 1)

    def test_resolve_by_name_requires_a_name(self) -> None:
        with self.assertRaises(ItemValidationError):
            source_service.resolve_source_by_name(self.db, '   ')

    def test_create_and_update_reject_duplicate_names(self) -> None:
        with self.assertRaises(ItemValidationError):
            source_service.create_source(self.db, name='Depo', color_code='#fff', type='internal')

        created = source_service.create_source(self.db, name='Toptancı', color_code='#eee', type='external')
        with self.assertRaises(ItemValidationError):
            source_service.update_source(self.db, source_id=created.id, name='Market')
        with self.assertRaises(ItemValidationError):
            source_service.create_source(self.db, name='Kargo', color_code='#ddd', type='courier')

        updated = source_service.update_source(self.db, source_id=created.id, type='internal')
        self.assertEqual(updated.type, 'internal')

    def test_source_in_use_cannot_be_deleted(self) -> None:
        job = job_service.create_job_list(self.db, title='Liste', created_by_principal_id=self.fx.admin_id)
        job_service.add_item(self.db, job_id=job.id, custom_name='Boya', source_id=self.fx.external_source_id)
        self.db.commit()

        with self.assertRaises(ItemValidationError):
            source_service.delete_source(self.db, source_id=self.fx.external_source_id)

        source_service.delete_source(self.db, source_id=self.fx.internal_source_id)
        self.db.commit()
        self.assertEqual([source.name for source in source_service.list_sources(self.db)], ['Market'])


if __name__ == '__main__':
    unittest.main()
