"""Application constants."""

MODES = (
    "combined",
    "split",
    "hth",
    "monthly",
    "keys",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

DELIMITED_SUFFIXES = (".csv",)
SPREADSHEET_SUFFIXES = (".xls", ".xlsx")
NUMERIC_COLUMNS = ("LAT", "LON", "LONG", "CH", "SH", "VAL")
DELIMITER_SAMPLE_LINES = 5

# Fixed indicator policy.
CH_LOW_MAX = 100.0
CH_HIGH_MIN = 301.0
SH_BELOW_NORMAL_MAX = 84.0
SH_ABOVE_NORMAL_MIN = 116.0
FLAG_ACTIVATION_PCT = 10.0

HTH_DRY_MIN_DAYS = 30.0
HTH_WET_MAX_DAYS = 5.0
HTH_RAIN_MARKER = "hujan"

COORDINATE_TOLERANCE = 0.0001
DEFAULT_BBOX_CHUNK = 1000
DEFAULT_MATCH_CHUNK = 100
UNKNOWN_REGION_NAME = "Unknown"

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "event",
    "status",
    "region",
    "rows_in",
    "rows_out",
    "rows_dropped",
    "duration_ms",
    "error_code",
    "message",
)

# Block-fill grid: source cells of PARENT_GRID_RESOLUTION replicated onto a
# TARGET_GRID_RESOLUTION grid inside the padded boundary bbox.
PARENT_GRID_RESOLUTION = 0.05
TARGET_GRID_RESOLUTION = 0.01
GRID_BBOX_PADDING = 0.05
GRID_CELL_TOLERANCE = 0.001
DEFAULT_GRID_CHUNK = 500
