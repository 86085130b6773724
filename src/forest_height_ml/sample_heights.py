"""Height-dataset sampling entry point for forest_height_ml."""
import argparse
import logging

from .config import ConfigurationError
from .config.cli import add_common_sampling_args, build_sampling_config
from .engine import create_engine
from .errors import ForestHeightError
from .sampling import build_height_dataset, export_height_dataset


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for sampling.

    Args:
        argv: Optional argument list. If None, uses sys.argv.
    """
    parser = argparse.ArgumentParser(
        description="Sample forest heights and join them with annual satellite embeddings."
    )
    add_common_sampling_args(parser)

    args = parser.parse_args(argv)

    # If YAML config is provided, defer validation to config loading
    if args.config is None and not args.height_source:
        parser.error("--height-source or HEIGHT_SOURCE must be supplied.")

    return args


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper()))

    try:
        config = build_sampling_config(args)
        engine = create_engine(config.engine, project=config.project, max_workers=config.max_workers)
        dataset = build_height_dataset(engine, config)
        if config.output is None:
            logging.warning("No output configured; the sampled dataset was not exported.")
        else:
            export_height_dataset(engine, dataset, config)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logging.error("Configuration error: %s", e)
        exit(1)
    except ForestHeightError as e:
        logging.error("Sampling failed: %s", e)
        exit(1)
    except Exception as e:
        logging.exception("Unexpected error during sampling: %s", e)
        exit(1)


if __name__ == "__main__":
    main()
