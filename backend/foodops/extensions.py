# Overview: Flask extension instances for the database and Alembic migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# Keys under app.extensions for explicitly constructed collaborators
PAYMENT_GATEWAY_KEY = "payment_gateway"
PAYOUT_FEES_KEY = "payout_fees"
