from pathlib import Path
from typing import Dict

from ..config.settings import EXPORT_FILES
from ..utils.logging import get_logger
from .ledger import PriceLedger
from .repository import CatalogStore

logger = get_logger(__name__)


def write_read_model(store: CatalogStore, ledger: PriceLedger, out_dir: Path) -> Dict[str, Path]:
    """Write products/listings/variants/prices as CSV files into ``out_dir``."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    frames = store.to_frames()
    frames["prices"] = ledger.to_frame()

    written = {}
    for name, frame in frames.items():
        target = out_dir / EXPORT_FILES[name]
        frame.to_csv(target, index=False, encoding="utf-8-sig")
        logger.info("  %s written: %d rows", target.name, len(frame))
        written[name] = target
    return written
