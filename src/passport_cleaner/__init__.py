"""passport-cleaner: reshape compliance-training exports into clean reports."""

__version__ = "0.2.0"

BASE_FIELDS: list[str] = ["Name", "Email", "Program"]

MODULE_BASES: list[str] = [
    "Bloodborne Pathogens and Workplace Safety",
    "Chemical Hazard Communication",
    "Compliance",
    "Emergency Procedures",
    "Magnetic Resonance Imaging Safety",
    "Patient Rights",
    "Patient Safety",
    "Infectious Medical Waste",
    "Fall Risk Prevention",
    "Infection Prevention and Standard Precautions",
]

MODULES_COLUMN = "eLearning Modules"
LINE_BREAK = "\n"

DEFAULT_SHEET = "Sheet 1"
DEFAULT_OUTPUT_NAME = "CPNW_CleanExport.xlsx"
