"""
DICOM series loader for CT studies.

Reads one folder of uncompressed single-frame images plus an optional
structure-set file. Files are decoded in parallel; a file that fails to
decode or extract is skipped and reported instead of aborting the load.
"""

import os
import re
import logging
import concurrent.futures
from glob import glob
from typing import Callable, List, Optional, Tuple

from config import LOADER_MAX_WORKERS, LOADER_PROGRESS_EVERY
from core.base import BaseLoader, Dataset, ImageSlice, LoadedStudy, StructureSet
from core.errors import DecodeError, EmptyInput, ExtractionError
from loaders.dicom_codec import is_dicom_file, read_file
from loaders.image_extractor import extract_image
from loaders.rtstruct import extract_structure_set
from loaders.structure_validator import StructureSetValidator, is_structure_set
from processors.volume_assembler import assemble

logger = logging.getLogger(__name__)


def _natural_sort_key(text: str):
    """Natural sorting key for filenames like img_1, img_2, ..., img_10"""
    return [int(c) if c.isdigit() else c.lower() for c in re.split(r'(\d+)', text)]


# ==========================================
# Shared Utility Functions
# ==========================================

def _validate_path(folder_path: str) -> None:
    """Validate folder path exists."""
    if not os.path.isdir(folder_path):
        raise FileNotFoundError(f"Path does not exist or is not a folder: {folder_path}")


def _find_dicom_files(folder_path: str) -> List[str]:
    """Find DICOM files in folder, checking extension first then the DICM magic."""
    files = [f for f in glob(os.path.join(folder_path, "*.dcm")) if os.path.isfile(f)]
    if not files:
        files = [f for f in glob(os.path.join(folder_path, "*"))
                 if os.path.isfile(f) and is_dicom_file(f)]
    if not files:
        raise FileNotFoundError(f"No DICOM files found in {folder_path}")
    files.sort(key=lambda f: _natural_sort_key(os.path.basename(f)))
    return files


class DicomSeriesLoader(BaseLoader):
    """Concrete DICOM series loader.

    - Filename-based natural sorting for deterministic reporting
    - Parallel decoding using ThreadPoolExecutor
    - Geometric ordering left to the volume assembler
    """

    def __init__(self, max_workers: int = LOADER_MAX_WORKERS, validate_structures: bool = True):
        """
        Args:
            max_workers: Number of parallel threads for file decoding.
            validate_structures: Run StructureSetValidator on structure files.
        """
        self.max_workers = max(1, int(max_workers))
        self.validate_structures = validate_structures

    def load(self, folder_path: str, callback: Optional[Callable[[int, str], None]] = None) -> LoadedStudy:
        logger.info("Scanning series folder: %s", folder_path)
        if callback: callback(0, "Scanning directory...")

        _validate_path(folder_path)
        files = _find_dicom_files(folder_path)

        if callback: callback(10, f"Decoding {len(files)} files...")
        decoded, skipped = self._parallel_decode(files, callback)

        slices: List[ImageSlice] = []
        structure_set: Optional[StructureSet] = None
        report = None
        for path, dataset in decoded:
            try:
                if is_structure_set(dataset):
                    if structure_set is not None:
                        logger.warning("Extra structure set ignored: %s", path)
                        skipped.append((path, "additional structure set"))
                        continue
                    if self.validate_structures:
                        report = StructureSetValidator().validate(dataset)
                        for msg in report["errors"] + report["warnings"]:
                            logger.warning("[%s] %s", os.path.basename(path), msg)
                    structure_set = extract_structure_set(dataset)
                    continue

                image = extract_image(dataset)
                if image is None:
                    skipped.append((path, "no pixel data"))
                    continue
                slices.append(image)
            except (DecodeError, ExtractionError) as exc:
                logger.warning("Skipping %s: %s", path, exc)
                skipped.append((path, f"{type(exc).__name__}: {exc}"))

        if not slices:
            raise EmptyInput(f"No image slices could be read from {folder_path}")

        if callback: callback(60, f"Assembling {len(slices)} slices...")
        stage = None
        if callback:
            stage = lambda p, m: callback(60 + int(35 * p / 100), m)
        volume = assemble(slices, stage)

        if skipped:
            logger.warning("%d file(s) skipped while loading %s", len(skipped), folder_path)
        logger.info("Loading complete: %s (z, y, x), spacing %s", volume.samples.shape, volume.spacing_mm)
        if callback: callback(100, "Loading complete.")
        return LoadedStudy(
            volume=volume,
            structure_set=structure_set,
            skipped=skipped,
            structure_report=report,
        )

    def _parallel_decode(
        self,
        files: List[str],
        callback: Optional[Callable] = None,
    ) -> Tuple[List[Tuple[str, Dataset]], List[Tuple[str, str]]]:
        """Parallel decode; returns (decoded in filename order, skipped)."""
        def read_single(args):
            idx, f = args
            try:
                return idx, read_file(f), None
            except (DecodeError, OSError) as e:
                return idx, None, f"{type(e).__name__}: {e}"

        total = len(files)
        results: List[Optional[Dataset]] = [None] * total
        skipped: List[Tuple[str, str]] = []

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(read_single, (i, f)) for i, f in enumerate(files)]
            completed = 0
            for future in concurrent.futures.as_completed(futures):
                idx, ds, error = future.result()
                if error is not None:
                    logger.warning("Failed to decode %s - %s", files[idx], error)
                    skipped.append((files[idx], error))
                results[idx] = ds
                completed += 1
                if callback and completed % LOADER_PROGRESS_EVERY == 0:
                    percent = 10 + int(45 * completed / total)
                    callback(percent, f"Decoded {completed}/{total} files...")

        skipped.sort(key=lambda item: _natural_sort_key(os.path.basename(item[0])))
        decoded = [(files[i], ds) for i, ds in enumerate(results) if ds is not None]
        return decoded, skipped
