"""Dataset loading from JSON files or the bundled fixtures."""

import json
import logging
from importlib.resources import files
from pathlib import Path
from typing import Any

from .errors import DatasetError, DatasetLoadError
from .validation.framework import Dataset, Domain

logger = logging.getLogger(__name__)


def fixture_name(domain: Domain | str) -> str:
    return f"{Domain(domain).value}-data.json"


def read_fixture(domain: Domain | str) -> str:
    """Text of the bundled sample dataset for a domain."""
    return files("dqgate").joinpath("resources", "fixtures", fixture_name(domain)).read_text(encoding="utf-8")


def load_document(path: str | Path | None, domain: Domain | str) -> tuple[Any, str]:
    """Decode a JSON data file, or the domain's bundled fixture when no path is given.

    Returns:
        Tuple of (decoded document, description of its source)

    Raises:
        DatasetLoadError: If the file cannot be read or is not JSON
    """
    if path is None:
        source = f"bundled {fixture_name(domain)}"
        text = read_fixture(domain)
    else:
        path = Path(path)
        source = str(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise DatasetLoadError(f"Data file not found: {path}") from e
        except OSError as e:
            raise DatasetLoadError(f"Failed to read data file {path}: {e}") from e

    try:
        return json.loads(text), source
    except json.JSONDecodeError as e:
        raise DatasetLoadError(f"Invalid JSON in {source}: {e}") from e


def to_dataset(document: Any, source: str = "document") -> Dataset:
    """Convert a decoded document to a Dataset.

    Raises:
        DatasetLoadError: If the document is not shaped like a dataset
    """
    try:
        dataset = Dataset.from_dict(document)
    except DatasetError as e:
        raise DatasetLoadError(f"Invalid dataset in {source}: {e}") from e
    logger.info(f"Loaded {dataset!r} from {source}")
    return dataset


def load_dataset(path: str | Path | None, domain: Domain | str) -> Dataset:
    """Load a dataset file, or the bundled fixture when no path is given.

    Args:
        path: JSON file to load, or None for the domain's fixture
        domain: Domain the dataset belongs to

    Returns:
        Immutable Dataset

    Raises:
        DatasetLoadError: If the file cannot be read, is not JSON, or is
            not shaped like a dataset
    """
    document, source = load_document(path, domain)
    return to_dataset(document, source)
