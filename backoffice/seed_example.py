import argparse

from sqlalchemy import select

from backoffice.db import SessionLocal, engine
from backoffice.models import Base, Principal, PrincipalRole, Product, Source, SourceType
from backoffice.security.passwords import hash_password


DEMO_SOURCES = [
    ('Depo', 'bg-green-100', SourceType.INTERNAL),
    ('Hırdavatçı', 'bg-yellow-100', SourceType.EXTERNAL),
]

DEMO_PRODUCTS = [
    ('Vida 4x40', '8690000000017', 250, 'adet', 'Demo'),
    ('Silikon Şeffaf', '8690000000024', 40, 'adet', 'Demo'),
    ('Kablo 2x1.5', '8690000000031', 120, 'metre', 'Demo'),
]


def seed(*, create_tables: bool = False) -> None:
    if create_tables:
        Base.metadata.create_all(engine)

    with SessionLocal() as db:
        for name, color_code, source_type in DEMO_SOURCES:
            source = db.execute(select(Source).where(Source.name == name)).scalar_one_or_none()
            if not source:
                db.add(Source(name=name, color_code=color_code, type=source_type))

        for name, barcode, stock, unit, brand in DEMO_PRODUCTS:
            product = db.execute(select(Product).where(Product.barcode == barcode)).scalar_one_or_none()
            if not product:
                db.add(Product(name=name, barcode=barcode, current_stock=stock, unit=unit, brand=brand))

        admin = db.execute(select(Principal).where(Principal.username == 'admin')).scalar_one_or_none()
        if not admin:
            db.add(
                Principal(
                    username='admin',
                    full_name='Admin',
                    password_hash=hash_password('adminpass'),
                    role=PrincipalRole.ADMIN,
                    active=True,
                )
            )

        worker = db.execute(select(Principal).where(Principal.username == 'depo1')).scalar_one_or_none()
        if not worker:
            db.add(
                Principal(
                    username='depo1',
                    full_name='Depo Sorumlusu',
                    password_hash=hash_password('depopass1'),
                    role=PrincipalRole.USER,
                    active=True,
                )
            )

        db.commit()


def main() -> None:
    parser = argparse.ArgumentParser(description='Insert demo principals, sources and products.')
    parser.add_argument(
        '--create-tables',
        action='store_true',
        help='Create missing tables before seeding (development databases only).',
    )
    args = parser.parse_args()

    seed(create_tables=args.create_tables)
    print('Seed data inserted/verified.')


if __name__ == '__main__':
    main()
