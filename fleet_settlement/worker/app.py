### fleet_settlement/worker/app.py

"""
Main Celery Application Configuration

Sets up the Celery application with the broker and result backend from
settings, discovers the settlement tasks and installs the configured
data provider in every worker process.
"""

# Third party imports
from celery import Celery
from celery.signals import worker_process_init

# Import all models to ensure they're registered with SQLAlchemy
# This must happen before any database operations in tasks
import fleet_settlement.ledger.models
import fleet_settlement.obligations.models

# Local imports
from fleet_settlement.settlements.providers import configure_data_provider

# Create Celery Instance
app = Celery("fleet_settlement")

# Configure celery from separate config file
app.config_from_object("fleet_settlement.worker.config")

# Auto discover tasks.py modules in the listed packages
app.autodiscover_tasks(["fleet_settlement.settlements"])


@worker_process_init.connect
def init_worker_data_provider(**kwargs):
    configure_data_provider()


if __name__ == "__main__":
    app.start()
