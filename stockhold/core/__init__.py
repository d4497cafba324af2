from stockhold.core.config import settings
from stockhold.core.database import get_db, Base
