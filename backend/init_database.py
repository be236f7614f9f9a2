"""
Database Initialization Script
Creates tables and seeds sample printers (and optionally a demo print job)
"""

import sys
from database import engine, SessionLocal, Base
from models import Printer, PrintJob, PrinterStatusEnum, JobPriority
from sqlalchemy import text

SAMPLE_PRINTERS = [
    {
        "name": "Front Desk Laser",
        "printer_id": "PRN-001",
        "printer_model": "LaserJet Pro M404",
        "manufacturer": "HP",
        "supported_page_sizes": ["A4"],
        "supports_color": False,
        "supports_duplex": True,
        "max_copies": 50,
        "supported_file_types": ["application/pdf"],
        "endpoint_index": 1,
    },
    {
        "name": "Studio Color",
        "printer_id": "PRN-002",
        "printer_model": "ColorQube 8580",
        "manufacturer": "Xerox",
        "supported_page_sizes": ["A4", "A3"],
        "supports_color": True,
        "supports_duplex": True,
        "max_copies": 100,
        "supported_file_types": ["application/pdf", "image/png", "image/jpeg"],
        "endpoint_index": 2,
    },
]


def create_tables():
    """Create all database tables"""
    print("📊 Creating database tables...")
    try:
        Base.metadata.create_all(bind=engine)
        print("✅ Tables created successfully")
        return True
    except Exception as e:
        print(f"❌ Failed to create tables: {e}")
        return False


def seed_printers(db):
    created = 0
    for values in SAMPLE_PRINTERS:
        if db.query(Printer).filter(Printer.name == values["name"]).first():
            continue
        db.add(Printer(status=PrinterStatusEnum.ONLINE, is_active=True, auto_print_enabled=True, **values))
        created += 1
    return created


def seed_demo_job(db):
    db.add(PrintJob(
        order_id="ORD-DEMO-1",
        order_number="DEMO-0001",
        customer_name="Demo Customer",
        customer_email="demo@example.com",
        file_url="https://example.com/demo.pdf",
        file_name="demo.pdf",
        file_type="application/pdf",
        printing_options={"page_size": "A4", "color": "bw", "sided": "single", "copies": 1, "page_count": 2},
        printer_index=1,
        priority=JobPriority.NORMAL,
        estimated_duration=1,
    ))


def seed_test_data(with_demo_job=False):
    """Seed database with sample printers"""
    print("\n🌱 Seeding sample printers...")

    db = SessionLocal()

    try:
        created = seed_printers(db)
        if with_demo_job:
            seed_demo_job(db)
        db.commit()
        if created:
            print(f"✅ {created} printer(s) created")
        else:
            print("⚠️  Sample printers already exist. Skipping...")
        return True

    except Exception as e:
        print(f"❌ Failed to seed data: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def check_database_connection():
    """Verify database connection"""
    print("🔍 Checking database connection...")
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))

        db.close()
        print("✅ Database connection successful")
        return True
    except Exception as e:
        print(f"❌ Database connection failed: {e}")
        print("ℹ️  Make sure the database is reachable and DATABASE_URL in .env is correct")
        return False


def reset_database():
    """Drop all tables (USE WITH CAUTION)"""
    print("⚠️  WARNING: This will delete ALL data!")
    confirmation = input("Type 'DELETE ALL DATA' to confirm: ")

    if confirmation == "DELETE ALL DATA":
        print("🗑️  Dropping all tables...")
        try:
            Base.metadata.drop_all(bind=engine)
            print("✅ All tables dropped")
            return True
        except Exception as e:
            print(f"❌ Failed to drop tables: {e}")
            return False
    else:
        print("❌ Confirmation failed. Aborting.")
        return False


def main():
    """Main initialization flow"""
    print("=" * 60)
    print("  Database Initialization")
    print("=" * 60)
    print()

    if "--reset" in sys.argv[1:]:
        if not reset_database():
            sys.exit(1)
        print()

    if not check_database_connection():
        sys.exit(1)

    print()

    if not create_tables():
        sys.exit(1)

    if not seed_test_data(with_demo_job="--demo-job" in sys.argv[1:]):
        sys.exit(1)

    print()
    print("=" * 60)
    print("  ✨ Database initialization complete!")
    print("=" * 60)
    print()
    print("Next steps:")
    print("  1. Start a printer backend: uvicorn printer_sim:app --port 8001")
    print("  2. Start the service: uvicorn backend:app --port 8000")
    print("  3. Access API docs: http://localhost:8000/docs")
    print()


if __name__ == "__main__":
    main()
