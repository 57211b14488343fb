"""Downloadable import template.

The template is served as CSV so it opens anywhere, but uploads accept Excel
workbooks only. Operators fill it in and save it as .xlsx before importing.
"""

import csv
import io

TEMPLATE_FILENAME = "template-heads-import.csv"

REQUIRED_COLUMNS = ("husbandName", "husbandID")

EXAMPLE_ROW: dict[str, str] = {
    "husbandName": "محمد أحمد ابو طير",
    "husbandID": "123456789",
    "husbandBirthDate": "1980-01-15",
    "husbandJob": "مهندس",
    "primaryPhone": "0599123456",
    "secondaryPhone": "0567789123",
    "originalResidence": "غزة - الشجاعية",
    "currentHousing": "رفح - البرازيل",
    "isDisplaced": "نعم",
    "displacedLocation": "رفح",
    "isAbroad": "لا",
    "warDamage2024": "نعم",
    "warDamageDescription": "تدمير كامل للمنزل",
    "branch": "غزة",
    "landmarkNear": "بجانب مسجد الشهداء",
    "totalMembers": "5",
    "numMales": "3",
    "numFemales": "2",
    "socialStatus": "متزوج",
    "adminNotes": "ملاحظات إضافية",
}

TEMPLATE_COLUMNS = tuple(EXAMPLE_ROW)


def build_template_csv() -> str:
    """Header row with every supported column plus one filled-in example."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=TEMPLATE_COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerow(EXAMPLE_ROW)
    return buffer.getvalue()
