DEFAULT_DATE_FORMAT = "%m/%d/%Y"
DEFAULT_DELIMITER = ","
DEFAULT_ENCODING = "utf-8"

DOSE_FIELDS = ["patient_id", "drug_name", "days_supply", "fill_date"]
DEFAULT_COLUMNS = {field: field for field in DOSE_FIELDS}

BAD_RECORD_POLICIES = ("reject", "skip")
DEFAULT_BAD_RECORD_POLICY = "reject"

# header row is line 1 of the source
FIRST_DATA_LINE = 2

DAYS_SUPPLY_REGEX = r"\d+"
