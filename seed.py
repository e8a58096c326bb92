from clinic_ledger.core.database import Base, SessionLocal, engine
from clinic_ledger.models import LedgerDomain
from clinic_ledger.services.posting_service import LedgerPostingService
from clinic_ledger.services.statement_service import StatementBuilder
from clinic_ledger.services.vendor_service import VendorLedgerService

from faker import Faker
import random
from datetime import date, timedelta

fake = Faker()

INCOME_CATEGORIES = {
    LedgerDomain.HOSPITAL: ["OPD Income", "Medical Test", "Operation Income", "Medicine Income", "Optics Income"],
    LedgerDomain.MEDICINE: ["Sales", "Other Income"],
    LedgerDomain.OPTICS: ["Sales", "Other Income"],
    LedgerDomain.OPERATION: ["Sales", "Other Income"],
}
EXPENSE_CATEGORIES = ["Staff Salary", "Electricity Bill", "Cleaning", "Advance House Rent", "Stationery"]

DAYS = 30

Base.metadata.create_all(bind=engine)
db = SessionLocal()

try:
    start = date.today() - timedelta(days=DAYS)

    print("🔄 Adding opening funds...")
    for domain in LedgerDomain.sub_ledgers():
        LedgerPostingService(db, domain).add_fund(
            random.randint(50, 200) * 1000, "Owner capital", "Opening fund", date=start
        )
    print("✅ Funds added.")

    print("🔄 Posting daily income and expenses...")
    postings = 0
    for offset in range(DAYS):
        day = start + timedelta(days=offset)
        for domain, categories in INCOME_CATEGORIES.items():
            service = LedgerPostingService(db, domain)
            for _ in range(random.randint(1, 4)):
                service.add_income_with_voucher(
                    random.randint(5, 300) * 10,
                    random.choice(categories),
                    f"{fake.name()} - {fake.word()}",
                    date=day,
                )
                postings += 1
            if random.random() < 0.4:
                service.add_expense_with_voucher(
                    random.randint(5, 100) * 10,
                    random.choice(EXPENSE_CATEGORIES),
                    fake.sentence(nb_words=4),
                    date=day,
                )
                postings += 1
    print(f"✅ Seeded {postings} postings")

    print("🔄 Creating vendors...")
    vendors = VendorLedgerService(db)
    for _ in range(random.randint(3, 6)):
        vendor = vendors.create_vendor(
            name=fake.company(),
            company_name=fake.company(),
            phone="".join(filter(str.isdigit, fake.phone_number()))[:20],
            domain=LedgerDomain.HOSPITAL,
            credit_limit=random.choice([0, 100000, 250000]),
        )
        for _ in range(random.randint(1, 3)):
            amount = random.randint(10, 80) * 100
            vendors.record_purchase(
                vendor.id,
                amount,
                f"Medicine lot {fake.bothify('??-####')}",
                paid_amount=random.choice([0, amount // 2]),
                date=start + timedelta(days=random.randint(0, DAYS)),
            )
    print("✅ Vendors seeded.")

    for result in StatementBuilder(db).reconcile_all():
        state = "✅" if result["is_consistent"] else "❌"
        print(f"{state} {result['domain'].value}: balance {result['actual']} (drift {result['drift']})")

except Exception as e:
    db.rollback()
    print(f"❌ Error while seeding: {e}")
    raise
finally:
    db.close()
