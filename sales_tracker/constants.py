APP_NAME = "Sales Tracker"

DATA_DIR = "data"
DB_FILE_NAME = "sales_tracker.db"
DB_PATH_ENV = "SALES_TRACKER_DB"

TABLE_SCHEMA_MIGRATIONS = "schema_migrations"

ORDER_STATUSES = ("pending", "supplied", "completed")
DEFAULT_ORDER_STATUS = "pending"

# placeholder reference rows used to backfill legacy flat daily entries
DEFAULT_COMPANY_ID = "default-company"
DEFAULT_COMPANY_NAME = "Default Company"
DEFAULT_PRODUCT_ID = "default-product"
DEFAULT_PRODUCT_NAME = "General Product"
DEFAULT_PRODUCT_COST_PRICE = 100.0
DEFAULT_PRODUCT_SELL_PRICE = 120.0
DEFAULT_PRODUCT_UNIT_PER_CARTON = 1
