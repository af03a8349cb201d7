import os
from datetime import date

from sqlalchemy.orm import Session

from invoice_backend.app.models.partner import Partner
from invoice_backend.app.models.rate_card import RateCard


DEFAULT_DEV_PARTNERS = [
    {"name": "Sample Logistics", "billing_code": "SMPL", "email": "billing@sample-logistics.test"},
    {"name": "Harbor Freight Partners", "billing_code": "HRBR", "email": "ap@harbor-freight.test"},
]


def ensure_default_dev_partners(db: Session) -> None:
    """
    Create demo partners with an open-ended rate card for local development.
    Skips execution when running under pytest to avoid altering test expectations.
    """
    if os.getenv("PYTEST_CURRENT_TEST"):
        return

    created = False
    for entry in DEFAULT_DEV_PARTNERS:
        existing = db.query(Partner).filter(Partner.billing_code == entry["billing_code"]).first()
        if existing:
            continue

        partner = Partner(**entry)
        partner.rate_cards.append(
            RateCard(name=f"{entry['name']} standard", effective_from=date(2024, 1, 1), is_active=True)
        )
        db.add(partner)
        created = True

    if created:
        db.commit()
