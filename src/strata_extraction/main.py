"""This module contains the command line interface of the strata extraction."""

import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from tqdm import tqdm

from strata_extraction.classification.error_classifier import create_error_report
from strata_extraction.errors import UnsupportedFileTypeError
from strata_extraction.extractor import StrataExtractor
from strata_extraction.settings import ExtractionSettings

load_dotenv()

logging.basicConfig(format="%(asctime)s %(levelname)-8s %(message)s", level=logging.INFO, datefmt="%Y-%m-%d %H:%M:%S")
logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "-i",
    "--input",
    "input_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to the input directory, or path to a single spreadsheet or pdf file.",
)
@click.option(
    "-o",
    "--output",
    "output_path",
    type=click.Path(path_type=Path),
    default=Path("output") / "extractions.json",
    help="Path to the output JSON file.",
)
@click.option(
    "--min-confidence",
    type=click.FloatRange(0, 1),
    default=None,
    help="Minimal confidence of a successful extraction. Overrides STRATA_MIN_CONFIDENCE_THRESHOLD.",
)
@click.option("--no-validate", is_flag=True, default=False, help="Skip the depth and layer boundary validation.")
def click_pipeline(input_path: Path, output_path: Path, min_confidence: float | None, no_validate: bool):
    """Extract the strata layers of borehole logs."""
    overrides = {}
    if min_confidence is not None:
        overrides["min_confidence_threshold"] = min_confidence
    if no_validate:
        overrides["auto_validate"] = False
    settings = ExtractionSettings(**overrides)
    logging.getLogger().setLevel(settings.logging_level)

    unsupported = start_pipeline(input_path, output_path, settings)
    if unsupported:
        sys.exit(1)


def start_pipeline(input_path: Path, output_path: Path, settings: ExtractionSettings) -> list[str]:
    """Run the extraction on a single file or on all files of a directory.

    Args:
        input_path (Path): A file, or a directory whose files are processed.
        output_path (Path): The JSON file the results are written to.
        settings (ExtractionSettings): The settings of the extraction.

    Returns:
        list[str]: The names of the files that were skipped because their type is not supported.
    """
    files = [input_path] if input_path.is_file() else sorted(path for path in input_path.iterdir() if path.is_file())
    extractor = StrataExtractor(settings)

    results = []
    unsupported = []
    for path in tqdm(files, desc="Processing files", unit="file"):
        logger.info("Processing file: %s", path)
        try:
            result = extractor.extract_from_file(path)
        except UnsupportedFileTypeError as e:
            logger.warning("%s is not treated: %s", path.name, e.message)
            unsupported.append(path.name)
            continue

        report = create_error_report(result.classification)
        logger.info(
            "%s: %s (%s layers, confidence %s)", path.name, report.title, len(result.layers), result.confidence.score
        )
        results.append(result.to_json())

    output_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Writing extractions to JSON file %s", output_path)
    with open(output_path, "w", encoding="utf8") as file:
        json.dump(results, file, ensure_ascii=False, indent=2)

    succeeded = sum(1 for result in results if result["success"])
    logger.info("Extracted %s of %s files successfully, %s unsupported.", succeeded, len(results), len(unsupported))
    return unsupported


if __name__ == "__main__":
    click_pipeline()
