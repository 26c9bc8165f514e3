"""
Field map of the host lease agreement.

The template is US Letter (612 x 792 pt). Positions were measured on the blank
agreement and are stored as percentages of the page size.
"""
from docsign.fieldmap.schema import FieldMap

COMPENSATION_GROUP = "compensation_model"

_FONT_SIZE = 10


def _text(field_id: str, label: str, page: int, top: float, left: float, width: float, group: str, **extra) -> dict:
    return {
        "id": field_id,
        "label": label,
        "type": extra.pop("type", "text"),
        "page": page,
        "topPct": top,
        "leftPct": left,
        "widthPct": width,
        "required": extra.pop("required", True),
        "group": group,
        "fontSize": _FONT_SIZE,
        **extra,
    }


_OPTION_B_ONLY = {"group": COMPENSATION_GROUP, "values": ["option_b"]}

HOST_CONTRACT_SCHEMA: list[dict] = [
    # Page 1: agreement date, host, vehicle, GPS log-in
    _text("agreement_day", "Day", 1, 22.5, 47, 6, "Agreement Date"),
    _text("agreement_month", "Month", 1, 22.5, 60, 12, "Agreement Date"),
    _text("agreement_year", "Year", 1, 22.5, 80, 6, "Agreement Date"),
    _text("host_name", "Full Name", 1, 33, 12, 55, "Host Information"),
    _text("host_id_number", "ID Number", 1, 35, 24, 30, "Host Information"),
    _text("host_kra_pin", "KRA PIN", 1, 37, 42, 28, "Host Information"),
    _text("host_po_box", "P.O. Box", 1, 39, 24, 20, "Host Information"),
    _text("vehicle_make_model", "Make and Model", 1, 45, 28, 45, "Vehicle Information"),
    _text("vehicle_reg_number", "Registration No.", 1, 47, 32, 28, "Vehicle Information"),
    _text("vehicle_chassis_no", "Chassis No.", 1, 49, 22, 35, "Vehicle Information"),
    _text("vehicle_engine_no", "Engine No.", 1, 51, 22, 35, "Vehicle Information"),
    _text("vehicle_year", "Year of Manufacture", 1, 53, 34, 12, "Vehicle Information"),
    _text("gps_company", "GPS Company", 1, 60, 22, 40, "GPS Details"),
    _text("gps_app_name", "App Name", 1, 62, 38, 30, "GPS Details"),
    _text("gps_login", "Login", 1, 64, 16, 35, "GPS Details"),
    _text("gps_password", "Password", 1, 66, 20, 35, "GPS Details"),
    # Page 2: commencement date and lease period
    _text("commencement_date", "Date", 2, 10, 62, 10, "Agreement Terms"),
    _text("commencement_year", "Year", 2, 10, 78, 6, "Agreement Terms"),
    _text("lease_period_months", "Months", 2, 14, 52, 8, "Agreement Terms", type="number"),
    # Page 4: compensation models, option B adds the fixed monthly sum
    _text(
        COMPENSATION_GROUP,
        "Select Compensation Model",
        4,
        12,
        10,
        80,
        "Compensation",
        type="radio",
        options=[
            {"value": "option_a", "label": "Option A: Revenue Share"},
            {"value": "option_b", "label": "Option B: Fixed Lease"},
        ],
        mutualExclusionGroup=COMPENSATION_GROUP,
    ),
    _text(
        "fixed_monthly_sum_words",
        "Monthly Sum (Words)",
        4,
        72,
        32,
        50,
        "Compensation",
        condition=_OPTION_B_ONLY,
    ),
    _text(
        "fixed_monthly_sum_figures",
        "Kshs.",
        4,
        75,
        16,
        25,
        "Compensation",
        type="number",
        condition=_OPTION_B_ONLY,
    ),
]

HOST_CONTRACT = FieldMap.from_schema(HOST_CONTRACT_SCHEMA)
