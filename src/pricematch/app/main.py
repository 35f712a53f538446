import sys

from .cli import main as cli_main
from ..utils.logging import get_logger

logger = get_logger(__name__)


def main():
    return cli_main()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Program terminated.")
    except Exception as e:
        logger.error("Error: %s", e, exc_info=True)
        sys.exit(1)
