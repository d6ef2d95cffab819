"""
Command line entry point.

Runs a pipeline declared in a Python file:

    pipet [--debug] pipeline.py

The file must define ``steps`` (a list of steps) and may define ``options``
(a ``RunOptions`` or a dict of its fields).
"""
import importlib.util
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .errors import ConfigurationError, PipetError
from .runner import Pipet, RunOptions

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%H:%M:%S'
)


def load_pipeline(path: Path):
    """Import ``path`` and return its ``steps`` and ``options``."""
    if not path.exists():
        raise FileNotFoundError(f"Pipeline not found: {path}")

    spec = importlib.util.spec_from_file_location(f"pipet_pipeline_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot load pipeline: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    steps = getattr(module, "steps", None)
    if steps is None:
        raise ConfigurationError(f"Pipeline {path} does not define `steps`")

    options = getattr(module, "options", None)
    if isinstance(options, dict):
        options = RunOptions(**options)
    elif options is not None and not isinstance(options, RunOptions):
        raise ConfigurationError(f"`options` in {path} must be a RunOptions or a dict")
    return list(steps), options


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else argv

    debug = '--debug' in argv or '-d' in argv
    paths = [arg for arg in argv if not arg.startswith('-')]

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if len(paths) != 1:
        print("usage: pipet [--debug] PIPELINE.py", file=sys.stderr)
        sys.exit(2)

    try:
        steps, options = load_pipeline(Path(paths[0]))
        results = Pipet().run(steps, options)

        # Exit with error if any step failed
        failed = [outcome.label for outcome in results if not outcome.ok]
        if failed:
            logging.error(f"Failed steps: {', '.join(failed)}")
            sys.exit(1)

    except FileNotFoundError as e:
        logging.error(f"{e}")
        print("No steps available")
        sys.exit(100)
    except PipetError as e:
        logging.error(f"Pipeline error: {e}")
        sys.exit(2)
    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=debug)
        sys.exit(1)


if __name__ == "__main__":
    main()
