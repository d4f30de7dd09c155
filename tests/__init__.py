import os

# Must run before `models` is imported: DBStorage picks its engine from the environment
os.environ["APP_ENV"] = "test"
os.environ.pop("DATABASE_URL", None)
