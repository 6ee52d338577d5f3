import json
import sys

from config import load_config, resolve_path, validate_config
from utils.logger import log_error, setup_logging


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    try:
        config = load_config()
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        return 1
    except OSError as e:
        log_error(f"Error loading config: {e}")
        return 1

    is_valid, errors = validate_config(config)
    if not is_valid:
        for error in errors:
            log_error(error)
        return 1

    # The interactive player owns the terminal, so records go to the log file.
    setup_logging(resolve_path(config, "log_file"), config.get("log_level", "INFO"))

    from spotify_tui.cli import main as run

    return run(argv, config)


if __name__ == "__main__":
    sys.exit(main())
