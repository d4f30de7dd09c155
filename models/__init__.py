"""Creates the DBStorage singleton shared by the API and the models."""
from models.db_storage import DBStorage

storage = DBStorage()
storage.reload()
