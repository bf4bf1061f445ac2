"""Allow ``python -m meter_ingest``."""

from meter_ingest.main import run

if __name__ == "__main__":
    run()
