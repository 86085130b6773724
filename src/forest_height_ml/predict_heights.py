"""Height-map prediction entry point for forest_height_ml."""
import argparse
import logging

from .config import ConfigurationError
from .config.cli import add_common_scoring_args, build_scoring_config
from .engine import create_engine
from .errors import ForestHeightError
from .scoring import predict_height_map


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for prediction.

    Args:
        argv: Optional argument list. If None, uses sys.argv.
    """
    parser = argparse.ArgumentParser(
        description="Apply a linear forest-height model to annual satellite embeddings."
    )
    add_common_scoring_args(parser)

    args = parser.parse_args(argv)

    # If YAML config is provided, defer validation to config loading
    if args.config is None:
        if not args.model_preset:
            parser.error("--model-preset or MODEL_PRESET must be supplied.")
        if not args.aoi and not args.aoi_collection:
            parser.error("Provide --aoi or --aoi-collection (or set AOI / AOI_COLLECTION).")

    return args


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper()))

    try:
        config = build_scoring_config(args)
        engine = create_engine(config.engine, project=config.project)
        result = predict_height_map(engine, config)
        if result.export is None:
            logging.warning("No output configured; the predicted height map was not exported.")
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logging.error("Configuration error: %s", e)
        exit(1)
    except ForestHeightError as e:
        logging.error("Prediction failed: %s", e)
        exit(1)
    except Exception as e:
        logging.exception("Unexpected error during prediction: %s", e)
        exit(1)


if __name__ == "__main__":
    main()
