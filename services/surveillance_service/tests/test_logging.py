from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[3]
SERVICES_DIR = ROOT / "services"
if str(SERVICES_DIR) not in sys.path:
    sys.path.insert(0, str(SERVICES_DIR))

from surveillance_service.utils.logging import SERVICE_KEY, setup_logging


def test_setup_logging_is_configured_once_and_tags_service() -> None:
    first = setup_logging()
    assert setup_logging() is first

    seen = []
    sink_id = first.add(lambda message: seen.append(message.record["extra"].get("service")))
    try:
        first.info("tagged")
    finally:
        first.remove(sink_id)

    assert seen == [SERVICE_KEY]
