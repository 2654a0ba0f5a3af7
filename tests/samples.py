"""Sample referral emails used across the test suite."""

from datetime import datetime, timezone
from typing import Optional

from agents.referral_intake.models import InboundEmail

RECEIVED_AT = datetime(2025, 1, 15, 10, 30, 0, tzinfo=timezone.utc)

MARY_JOHNSON_BODY = """Home health referral from Springfield General Hospital.

Patient: Mary Johnson
Diagnosis: Post-surgical hip replacement recovery
Insurance: Medicare
Medicare ID: 1EG4-TE5-MK72
Address: 123 Oak Street, Springfield, IL 62701
Distance from office: 5 miles
Hospital Rating: 5
Services Needed: Skilled nursing, physical therapy, wound care
Physician orders attached.
"""

ROBERT_WILLIAMS_BODY = """Discharge planning referral.

Patient: Robert Williams
Diagnosis: CHF exacerbation with history of medication non-compliance
Insurance: Medicaid
Address: 456 Elm Ave, Springfield, IL 62702
Distance: 10 miles
Hospital Rating: 4
Services: Skilled nursing, medication management
Physician orders on file.
"""

HOSPICE_BODY = """Referral for home health services.

Patient: Helen Davis
Diagnosis: Terminal cancer, hospice appropriate
Insurance: Medicare
Address: 9 Pine Road, Springfield, IL 62703
Distance: 8 miles
Hospital Rating: 4
Services: Skilled nursing
Physician orders attached.
"""

DISTANT_BODY = """Referral for home health services.

Patient: George Miller
Diagnosis: COPD
Insurance: Medicare
Address: 77 Lake Shore Dr, Chicago, IL 60611
Distance: 45 miles
Hospital Rating: 5
Services: Skilled nursing
Physician orders attached.
"""

NO_DISTANCE_BODY = """Referral for home health services.

Patient: Alice Moore
Diagnosis: Diabetes management
Insurance: Medicare
Zip Code: 62704
Hospital Rating: 5
Services: Skilled nursing
Physician orders attached.
"""

NO_PATIENT_BODY = """Hi team,

Please see the attached referral paperwork and let us know if anything is missing.

Thanks
"""


def make_email(
    body: str,
    subject: str = "New Home Health Referral",
    message_id: str = "msg-001",
    from_address: str = "discharge@springfieldgeneral.org",
    timestamp: Optional[datetime] = None,
    html: Optional[str] = None,
) -> InboundEmail:
    return InboundEmail(
        from_address=from_address,
        to_address="intake@homehealth.example.com",
        subject=subject,
        text=body,
        html=html,
        timestamp=timestamp or RECEIVED_AT,
        message_id=message_id,
    )
