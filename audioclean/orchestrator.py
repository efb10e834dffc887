"""
Pipeline Orchestrator
=====================

Decode -> transform -> encode -> score, for one clip or a whole directory.

Features:
- Explicit state machine with recorded history
- Failures surfaced as values, never partial output
- Scoped decoder resources released on every exit path
- Parallel batch processing with worker pool
- Structured output generation (WAV files, CSV, JSON summary)
"""

import os
import json
import time
import asyncio
import functools
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from concurrent.futures import ProcessPoolExecutor, as_completed
from tqdm import tqdm
import pandas as pd

from .buffer import SampleBuffer
from .codec import CodecAdapter, build_codec
from .config import PipelineConfig, TransformConfig, DEFAULT_CONFIG, output_filename
from .errors import PipelineError, DecodeError, EmptyInputError, EncodeError
from .metrics import QualityMetrics, QualityScorer, SignalStats, compute_signal_stats
from .preprocessing import AudioTransformer, TransformReport

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    DECODING = "decoding"
    TRANSFORMING = "transforming"
    ENCODING = "encoding"
    SCORING = "scoring"
    DONE = "done"
    FAILED = "failed"


# Allowed successor of each non-terminal state (FAILED is always allowed)
_NEXT_STATE = {
    PipelineState.IDLE: PipelineState.DECODING,
    PipelineState.DECODING: PipelineState.TRANSFORMING,
    PipelineState.TRANSFORMING: PipelineState.ENCODING,
    PipelineState.ENCODING: PipelineState.SCORING,
    PipelineState.SCORING: PipelineState.DONE,
}

# Error kind used when an unexpected exception escapes a stage
_STAGE_ERRORS = {
    PipelineState.DECODING: DecodeError,
    PipelineState.ENCODING: EncodeError,
}


@dataclass
class PipelineResult:
    """Result of one pipeline invocation"""
    filename: Optional[str] = None
    transforms: TransformConfig = field(default_factory=TransformConfig)
    state: PipelineState = PipelineState.IDLE
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])

    # Populated only when state is DONE
    container: Optional[bytes] = None
    metrics: Optional[QualityMetrics] = None
    buffer: Optional[SampleBuffer] = None
    transform_report: Optional[TransformReport] = None
    signal_stats: Optional[SignalStats] = None

    error: Optional[PipelineError] = None
    input_bytes: int = 0
    output_path: Optional[str] = None
    # Paths relative to the batch input root, when run as part of a batch
    source_name: Optional[str] = None
    output_relpath: Optional[str] = None
    processing_time_sec: float = 0.0

    @property
    def success(self) -> bool:
        return self.state == PipelineState.DONE

    @property
    def output_name(self) -> str:
        return self.output_relpath or output_filename(self.filename)

    def release_audio(self):
        """Drop the buffer and container, keeping the metrics"""
        self.buffer = None
        self.container = None

    def to_dict(self) -> Dict:
        return {
            "filename": self.filename,
            "transforms": self.transforms.to_dict(),
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "signal": self.signal_stats.to_dict() if self.signal_stats else None,
            "transform_report": self.transform_report.to_dict() if self.transform_report else None,
            "error": self.error.to_dict() if self.error else None,
            "input_bytes": self.input_bytes,
            "source_name": self.source_name,
            "output_path": self.output_path,
            "success": self.success,
            "processing_time_sec": self.processing_time_sec
        }

    def to_csv_row(self) -> Dict:
        """Flatten result for CSV export"""
        row = {
            "filename": self.source_name or (os.path.basename(self.filename) if self.filename else None),
            "output_file": self.output_name,
            "filter_speech": self.transforms.filter_speech,
            "trim_pauses": self.transforms.trim_pauses,
            "input_bytes": self.input_bytes,
        }

        if self.metrics:
            row.update(self.metrics.to_dict())

        if self.signal_stats:
            row.update({
                "peak": self.signal_stats.peak,
                "rms_db": self.signal_stats.rms_db,
                "clipping_ratio": self.signal_stats.clipping_ratio,
            })

        if self.transform_report:
            row["samples_zeroed"] = self.transform_report.samples_zeroed

        row.update({
            "state": self.state.value,
            "success": self.success,
            "error_kind": self.error.kind if self.error else None,
            "error": self.error.message if self.error else None,
            "processing_time_sec": self.processing_time_sec,
        })

        return row


class AudioQualityPipeline:
    """
    Single-clip pipeline.

    Usage:
        pipeline = AudioQualityPipeline()
        result = pipeline.run(data, TransformConfig(trim_pauses=True), "clip.mp3")
        if result.success:
            Path(result.output_name).write_bytes(result.container)
    """

    def __init__(self, config: PipelineConfig = None, codec: CodecAdapter = None):
        """
        Initialize pipeline.

        Args:
            config: PipelineConfig instance
            codec: Codec adapter (built from config.codec if None)
        """
        self.config = config or DEFAULT_CONFIG
        self.codec = codec or build_codec(self.config.codec, self.config.audio)
        self.transformer = AudioTransformer(self.config.audio)
        self.scorer = QualityScorer(self.config.audio)

    def _advance(self, result: PipelineResult, state: PipelineState):
        expected = _NEXT_STATE.get(result.state)
        if state != expected:
            raise RuntimeError(f"Illegal transition {result.state.value} -> {state.value}")
        result.state = state
        result.history.append(state)
        logger.debug(f"[{result.filename or '<bytes>'}] -> {state.value}")

    def _fail(self, result: PipelineResult, error: PipelineError):
        failed_in = result.state
        result.release_audio()
        result.metrics = None
        result.transform_report = None
        result.signal_stats = None
        result.error = error
        result.state = PipelineState.FAILED
        result.history.append(PipelineState.FAILED)
        logger.error(f"Pipeline failed during {failed_in.value} for "
                     f"{result.filename or '<bytes>'}: {error.kind}: {error.message}")

    @staticmethod
    def _write_output(path: Path, container: bytes):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(container)
        except OSError as e:
            raise EncodeError(f"Cannot write {path}: {e}") from e

    @staticmethod
    def _discard_output(path: Path):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial output {path}: {e}")

    def run(self, data: Optional[bytes],
            transforms: Optional[TransformConfig] = None,
            filename: Optional[str] = None,
            output_path: Optional[str] = None) -> PipelineResult:
        """
        Run the complete pipeline on raw input bytes.

        Args:
            data: Input file contents
            transforms: Transform switches (none enabled if None)
            filename: Original file name, used for format hints and output naming
            output_path: Write the encoded WAV here during the encode stage
                (None = keep it in memory only). Removed again if a later
                stage fails.

        Returns:
            PipelineResult (state DONE or FAILED)
        """
        start_time = time.time()
        transforms = transforms or TransformConfig()
        result = PipelineResult(
            filename=filename,
            transforms=transforms,
            input_bytes=len(data) if data else 0
        )

        if not data:
            self._fail(result, EmptyInputError("No audio input supplied"))
            result.processing_time_sec = time.time() - start_time
            return result

        data = bytes(data)
        out_path = Path(output_path) if output_path is not None else None
        wrote_output = False

        try:
            with self.codec.open_context() as context:
                # 1. Decode
                self._advance(result, PipelineState.DECODING)
                buffer = self.codec.decode(data, context, filename)
                if buffer.frame_count == 0:
                    raise DecodeError("Decoded audio contains no frames")
                logger.debug(f"Decoded {buffer}")

                # 2. Transform in place
                self._advance(result, PipelineState.TRANSFORMING)
                report = self.transformer.apply(buffer, transforms)

                # 3. Encode
                self._advance(result, PipelineState.ENCODING)
                container = self.codec.encode(buffer)
                if out_path is not None:
                    wrote_output = True
                    self._write_output(out_path, container)
                    logger.debug(f"Saved audio to {out_path}")

                # 4. Score
                self._advance(result, PipelineState.SCORING)
                metrics = self.scorer.measure(buffer, len(data))
                stats = compute_signal_stats(buffer)

        except PipelineError as e:
            if wrote_output:
                self._discard_output(out_path)
            self._fail(result, e)
        except Exception as e:
            logger.exception(f"Unexpected error during {result.state.value}")
            if wrote_output:
                self._discard_output(out_path)
            error_cls = _STAGE_ERRORS.get(result.state, PipelineError)
            self._fail(result, error_cls(f"{type(e).__name__}: {e}"))
        else:
            result.buffer = buffer
            result.container = container
            result.metrics = metrics
            result.transform_report = report
            result.signal_stats = stats
            if out_path is not None:
                result.output_path = str(out_path)
            self._advance(result, PipelineState.DONE)

            logger.info(f"Processed {result.filename or '<bytes>'}: "
                        f"{metrics.duration:.2f}s, {metrics.channels}ch @ {metrics.sample_rate}Hz, "
                        f"{metrics.bitrate} kbps, score {metrics.quality_score:.0f}/100")

        result.processing_time_sec = time.time() - start_time
        return result

    async def run_async(self, data: Optional[bytes],
                        transforms: Optional[TransformConfig] = None,
                        filename: Optional[str] = None) -> PipelineResult:
        """
        Run the pipeline in a worker thread.

        A cancelled caller never receives a result; the decoding context
        is still closed when the worker finishes.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.run, data, transforms, filename)
        )

    def process_file(self, filepath: str,
                     transforms: Optional[TransformConfig] = None,
                     output_dir: Optional[str] = None,
                     output_name: Optional[str] = None,
                     source_name: Optional[str] = None) -> PipelineResult:
        """
        Process a file on disk and write processed_<stem>.wav on success.

        Args:
            filepath: Input audio file
            transforms: Transform switches
            output_dir: Where to write the processed file (None = don't write)
            output_name: Output path relative to output_dir
                (default processed_<stem>.wav)
            source_name: Name recorded for the input in reports
                (default: the file's basename)

        Returns:
            PipelineResult
        """
        path = Path(filepath)
        transforms = transforms or TransformConfig()

        if not path.is_file():
            result = PipelineResult(filename=str(path), transforms=transforms,
                                    source_name=source_name)
            self._fail(result, EmptyInputError(f"No file supplied at {path}"))
            return result

        try:
            data = path.read_bytes()
        except OSError as e:
            result = PipelineResult(filename=str(path), transforms=transforms,
                                    source_name=source_name)
            self._fail(result, DecodeError(f"Cannot read {path}: {e}"))
            return result

        out_path = None
        if output_dir is not None:
            out_path = Path(output_dir) / (output_name or output_filename(path.name, self.config.output))

        result = self.run(data, transforms, str(path), output_path=out_path)
        result.source_name = source_name
        result.output_relpath = output_name
        return result


def _failed_result(filepath: str, transforms: TransformConfig, error: PipelineError,
                   source_name: Optional[str] = None,
                   output_name: Optional[str] = None) -> PipelineResult:
    return PipelineResult(
        filename=filepath,
        transforms=transforms,
        state=PipelineState.FAILED,
        history=[PipelineState.IDLE, PipelineState.FAILED],
        error=error,
        source_name=source_name,
        output_relpath=output_name
    )


def process_single_file(filepath: str,
                        config: PipelineConfig,
                        transforms: TransformConfig,
                        output_dir: Optional[str],
                        output_name: Optional[str] = None,
                        source_name: Optional[str] = None) -> PipelineResult:
    """
    Process one file (worker function).

    This function is designed to be called in a separate process; the audio
    payload is written to disk and dropped so only metrics travel back.

    Args:
        filepath: Input audio file
        config: PipelineConfig instance
        transforms: Transform switches
        output_dir: Output directory for the processed file
        output_name: Output path relative to output_dir
        source_name: Input path relative to the batch root

    Returns:
        PipelineResult without buffer or container
    """
    try:
        pipeline = AudioQualityPipeline(config)
        result = pipeline.process_file(filepath, transforms, output_dir,
                                       output_name=output_name, source_name=source_name)
        result.release_audio()
        return result
    except Exception as e:
        logger.exception(f"Error processing {filepath}")
        return _failed_result(filepath, transforms, PipelineError(f"{type(e).__name__}: {e}"),
                              source_name, output_name)


class BatchProcessor:
    """
    Batch pipeline over a directory with multiprocessing support.

    Usage:
        processor = BatchProcessor(config)
        df = processor.run("uploads/", output_dir="results/")
    """

    def __init__(self, config: PipelineConfig = None):
        """
        Initialize batch processor.

        Args:
            config: PipelineConfig instance
        """
        self.config = config or DEFAULT_CONFIG

        # Results storage
        self.results: List[PipelineResult] = []
        self._run_metadata: Dict = {}

    def scan(self, input_path: str) -> List[str]:
        """
        Collect audio files to process.

        Args:
            input_path: A single file or a directory (searched recursively)

        Returns:
            Sorted list of file paths
        """
        root = Path(input_path)
        if root.is_file():
            return [str(root)]

        extensions = {ext.lower() for ext in self.config.output.AUDIO_EXTENSIONS}
        prefix = self.config.output.OUTPUT_PREFIX
        files = sorted(
            str(p) for p in root.rglob("*")
            if p.is_file() and p.suffix.lower() in extensions and not p.name.startswith(prefix)
        )

        logger.info(f"Found {len(files)} audio files under {root}")
        return files

    def plan_outputs(self, files: List[str], input_path: str) -> Dict[str, Tuple[str, str]]:
        """
        Assign each input a report name and a unique output path.

        Outputs mirror the input's directory relative to the scan root.
        Inputs in one directory that share a stem (x.mp3, x.wav) get the
        source extension appended to the later output name.

        Args:
            files: Paths returned by scan()
            input_path: The scanned file or directory

        Returns:
            {filepath: (source_name, output_name)}, both relative and POSIX-style
        """
        root = Path(input_path)
        if root.is_file():
            root = root.parent

        prefix = self.config.output.OUTPUT_PREFIX
        suffix = self.config.output.OUTPUT_SUFFIX
        plan = {}
        taken = set()
        for filepath in files:
            path = Path(filepath)
            try:
                rel = path.relative_to(root)
            except ValueError:
                rel = Path(path.name)

            out = rel.parent / output_filename(rel.name, self.config.output)
            if out in taken:
                stem = f"{rel.stem}_{rel.suffix.lstrip('.')}"
                out = rel.parent / f"{prefix}{stem}{suffix}"
                n = 1
                while out in taken:
                    out = rel.parent / f"{prefix}{stem}_{n}{suffix}"
                    n += 1
                logger.warning(f"Output name collision for {rel.as_posix()}, writing {out.as_posix()}")

            taken.add(out)
            plan[filepath] = (rel.as_posix(), out.as_posix())

        return plan

    def run(self, input_path: str,
            output_dir: str = None,
            transforms: TransformConfig = None,
            n_workers: int = None,
            show_progress: bool = True) -> pd.DataFrame:
        """
        Run the pipeline on every audio file under input_path.

        Args:
            input_path: File or directory of audio files
            output_dir: Output directory for processed files and results
            transforms: Transform switches applied to every file
            n_workers: Number of parallel workers (None = use config)
            show_progress: Show progress bar

        Returns:
            DataFrame with one row per file
        """
        start_time = time.time()

        n_workers = n_workers or self.config.n_workers
        output_dir = output_dir or self.config.output.OUTPUT_DIR
        transforms = transforms or TransformConfig()

        # Setup output directory
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        # Store run metadata
        self._run_metadata = {
            "input_path": str(input_path),
            "output_dir": str(output_dir),
            "transforms": transforms.to_dict(),
            "codec": self.config.codec,
            "config_hash": self.config.config_hash,
            "config_version": self.config.audio.CONFIG_VERSION,
            "start_time": datetime.now().isoformat(),
            "n_workers": n_workers
        }

        logger.info(f"Starting batch run (config v{self.config.audio.CONFIG_VERSION})")
        logger.info(f"Input: {input_path}")
        logger.info(f"Workers: {n_workers}")

        # 1. Scan
        files = self.scan(input_path)
        if not files:
            logger.warning("No audio files found!")
            return pd.DataFrame()

        self._run_metadata["total_files"] = len(files)
        plan = self.plan_outputs(files, input_path)

        # 2. Process
        if n_workers > 1 and len(files) > 1:
            self.results = self._process_parallel(files, plan, transforms, str(output_path),
                                                  n_workers, show_progress)
        else:
            self.results = self._process_sequential(files, plan, transforms, str(output_path),
                                                    show_progress)

        # 3. Generate and save results
        df = self._generate_dataframe()
        self._save_results(df, output_path)

        # Summary
        elapsed = time.time() - start_time
        successful = sum(1 for r in self.results if r.success)

        self._run_metadata.update({
            "end_time": datetime.now().isoformat(),
            "elapsed_sec": elapsed,
            "successful": successful,
            "failed": len(self.results) - successful
        })

        logger.info(f"Batch complete: {successful}/{len(self.results)} successful in {elapsed:.1f}s")

        return df

    def _process_parallel(self, files: List[str],
                          plan: Dict[str, Tuple[str, str]],
                          transforms: TransformConfig,
                          output_dir: str,
                          n_workers: int,
                          show_progress: bool) -> List[PipelineResult]:
        """
        Process files in parallel using ProcessPoolExecutor.
        """
        results = []

        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            future_to_file = {
                executor.submit(process_single_file, path, self.config, transforms, output_dir,
                                output_name=plan[path][1], source_name=plan[path][0]): path
                for path in files
            }

            iterator = as_completed(future_to_file)
            if show_progress:
                iterator = tqdm(iterator, total=len(files), desc="Processing")

            for future in iterator:
                try:
                    results.append(future.result())
                except Exception as e:
                    path = future_to_file[future]
                    logger.error(f"Worker failed: {path}: {e}")
                    source_name, output_name = plan[path]
                    results.append(_failed_result(path, transforms, PipelineError(str(e)),
                                                  source_name, output_name))

        return results

    def _process_sequential(self, files: List[str],
                            plan: Dict[str, Tuple[str, str]],
                            transforms: TransformConfig,
                            output_dir: str,
                            show_progress: bool) -> List[PipelineResult]:
        """
        Process files one after another in this process.
        """
        results = []
        iterator = tqdm(files, desc="Processing") if show_progress else files

        for path in iterator:
            source_name, output_name = plan[path]
            results.append(process_single_file(path, self.config, transforms, output_dir,
                                               output_name, source_name))

        return results

    def _generate_dataframe(self) -> pd.DataFrame:
        """
        Convert results to pandas DataFrame.
        """
        rows = [r.to_csv_row() for r in self.results]
        df = pd.DataFrame(rows)

        if "filename" in df.columns:
            df = df.sort_values("filename").reset_index(drop=True)

        return df

    def _save_results(self, df: pd.DataFrame, output_path: Path):
        """
        Save results to various formats.
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        # 1. Master CSV
        csv_path = output_path / f"audio_quality_metrics_{timestamp}.csv"
        df.to_csv(csv_path, index=False)
        logger.info(f"Saved CSV: {csv_path}")

        # 2. Summary statistics
        summary = self._compute_summary(df)
        summary_path = output_path / f"summary_statistics_{timestamp}.json"
        with open(summary_path, "w") as f:
            json.dump(summary, f, indent=2, default=str)
        logger.info(f"Saved summary: {summary_path}")

        # 3. Run metadata
        meta_path = output_path / f"run_metadata_{timestamp}.json"
        with open(meta_path, "w") as f:
            json.dump(self._run_metadata, f, indent=2, default=str)

        # 4. Config snapshot
        config_path = output_path / f"config_snapshot_{timestamp}.json"
        self.config.save(str(config_path))

        # 5. Stable copy of the latest results
        df.to_csv(output_path / "latest_results.csv", index=False)

    def _compute_summary(self, df: pd.DataFrame) -> Dict:
        """
        Compute summary statistics from results.
        """
        summary = {
            "total_files": len(df),
            "successful": int(df["success"].sum()),
            "failed": int((~df["success"].astype(bool)).sum()),
        }

        metrics = ["quality_score", "bitrate_kbps", "sample_rate", "duration_sec"]

        for metric in metrics:
            if metric in df.columns:
                valid = df[metric].dropna()
                if len(valid) > 0:
                    summary[f"{metric}_mean"] = float(valid.mean())
                    summary[f"{metric}_min"] = float(valid.min())
                    summary[f"{metric}_max"] = float(valid.max())
                    summary[f"{metric}_median"] = float(valid.median())

        # By channel layout
        if "channels" in df.columns and "quality_score" in df.columns:
            by_channels = df.dropna(subset=["channels"]).groupby("channels")["quality_score"].agg(
                ["mean", "count"]
            )
            summary["quality_score_by_channels"] = {
                str(int(k)): v for k, v in by_channels.to_dict("index").items()
            }

        # Failures by kind
        if "error_kind" in df.columns:
            kinds = df["error_kind"].dropna().value_counts()
            summary["errors_by_kind"] = {str(k): int(v) for k, v in kinds.items()}

        return summary


def run_pipeline(input_path: str,
                 output_dir: str = "pipeline_output",
                 transforms: TransformConfig = None,
                 n_workers: int = 4,
                 verbose: bool = True) -> pd.DataFrame:
    """
    Convenience function to run the batch pipeline.

    Args:
        input_path: File or directory of audio files
        output_dir: Output directory for results
        transforms: Transform switches
        n_workers: Number of parallel workers
        verbose: Enable verbose logging

    Returns:
        DataFrame with all metrics
    """
    # Create output directory
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    # Setup logging
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(f"{output_dir}/pipeline.log"),
            logging.StreamHandler()
        ]
    )

    # Configure pipeline
    config = PipelineConfig()
    config.n_workers = n_workers
    config.verbose = verbose

    # Run
    processor = BatchProcessor(config)
    return processor.run(input_path, output_dir, transforms, n_workers)


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m audioclean.orchestrator <input_path> [output_dir] [n_workers]")
        sys.exit(1)

    input_path = sys.argv[1]
    output_dir = sys.argv[2] if len(sys.argv) > 2 else "pipeline_output"
    n_workers = int(sys.argv[3]) if len(sys.argv) > 3 else 4

    df = run_pipeline(input_path, output_dir, n_workers=n_workers)
    print(f"\nResults saved to {output_dir}/")
    print(df.head())
