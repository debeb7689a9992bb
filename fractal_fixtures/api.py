"""
Main API classes for fixture generation.

This module wires the sampler, renderer, complexity evaluator, codec and
size inflator into independent jobs and runs a batch of them across
processes.
"""

import numpy as np
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from pathlib import Path
from concurrent.futures import ProcessPoolExecutor, as_completed
import logging
import os
import time

from .acceleration import is_numba_available
from .acceleration.parallel import TileAccelerator
from .core.math_functions import ComplexPlane, EscapeTimeIterator, Raster, Viewport
from .core.sampling import ParameterSampler
from .core.synthesis import SynthesisLoop
from .errors import ConfigurationError, JobFailure
from .io.config import GenerationConfig, BACKENDS
from .io.preview import preview_image
from .rendering.coloring import ColoringEngine
from .rendering.image_output import get_codec, verify_trailing_tolerance, write_artifact, human_readable_size
from .rendering.inflation import SizeInflator

logger = logging.getLogger(__name__)


def _numpy_kernel(c: np.ndarray, max_iter: int) -> np.ndarray:
    return EscapeTimeIterator(max_iter).mandelbrot_iteration(c)


class FractalRenderer:
    """Escape-time renderer producing rasters for viewports."""

    def __init__(self, backend: str = 'numpy', threads: Optional[int] = None, tile_size: int = 256):
        """
        Initialize fractal renderer.

        Args:
            backend: 'numpy' (vectorized) or 'numba' (JIT, needs the jit extra)
            threads: Tile threads per render (None for optimal count)
            tile_size: Tile edge length in pixels
        """
        self.backend = backend
        self.kernel = self._setup_backend(backend)
        self.accelerator = TileAccelerator(threads, tile_size)

    def _setup_backend(self, backend: str):
        """Resolve the escape-time kernel for a backend name."""
        if backend == 'numpy':
            return _numpy_kernel

        if backend == 'numba':
            if not is_numba_available():
                raise ConfigurationError("numba backend requested but numba is not installed")
            from .acceleration.numba_backend import get_numba_accelerator
            return get_numba_accelerator().mandelbrot_iteration

        raise ConfigurationError(f"Unknown backend '{backend}'. Available: {', '.join(BACKENDS)}")

    def render(self, viewport: Viewport, width: int, height: int) -> Raster:
        """
        Render a viewport.

        Args:
            viewport: Region and iteration budget
            width, height: Raster dimensions in pixels

        Returns:
            Raster of escape values
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Width and height must be positive, got {width}x{height}")

        start_time = time.time()
        plane: ComplexPlane = viewport.plane(width, height)
        values = self.accelerator.render(self.kernel, plane, viewport.max_iterations)

        logger.debug(f"Rendered {width}x{height} at {viewport.center:.6f} "
                     f"(max_iter={viewport.max_iterations}) in {time.time() - start_time:.2f}s")
        return Raster(values, viewport.max_iterations)


@dataclass
class JobSpec:
    """Everything a worker process needs to produce one artifact."""
    index: int
    seed: np.random.SeedSequence
    output_path: Path
    config: GenerationConfig
    render_threads: int = 1


@dataclass
class JobResult:
    """Outcome of one generation job."""
    index: int
    status: str
    path: Optional[str] = None
    size_bytes: Optional[int] = None
    score: Optional[float] = None
    attempts: Optional[int] = None
    viewport: Optional[Dict[str, Any]] = None
    failure_kind: Optional[str] = None
    message: Optional[str] = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == 'succeeded'

    @classmethod
    def failure(cls, index: int, kind: str, message: str, duration: float = 0.0) -> 'JobResult':
        return cls(index=index, status='failed', failure_kind=kind, message=message, duration=duration)


def run_job(spec: JobSpec) -> JobResult:
    """
    Generate one fixture: sample until accepted, color, encode, inflate, write.

    Job-level failures are returned as failed results rather than raised, so
    one job never aborts its siblings.
    """
    start_time = time.time()
    config = spec.config
    rng = np.random.default_rng(spec.seed)

    try:
        sampler = ParameterSampler(config.ranges, rng)
        width, height = sampler.sample_dimensions()
        renderer = FractalRenderer(config.backend, spec.render_threads, config.tile_size)

        logger.info(f"Job {spec.index}: {width}x{height}")
        loop = SynthesisLoop(sampler, renderer, config.band, config.max_attempts, width, height)
        outcome = loop.run()

        rgb_image = ColoringEngine().render_color_image(outcome.raster, palette=config.palette)
        codec = get_codec(config.image_format, **config.codec_options())
        encoded = codec.encode(rgb_image)

        artifact = SizeInflator(codec, rng).inflate(encoded, config.target_min_bytes, config.target_max_bytes)
        write_artifact(artifact.data, spec.output_path)

    except JobFailure as e:
        logger.warning(f"Job {spec.index} failed ({e.kind}): {e}")
        return JobResult.failure(spec.index, e.kind, str(e), time.time() - start_time)
    except Exception as e:
        logger.exception(f"Job {spec.index} failed unexpectedly")
        return JobResult.failure(spec.index, 'unexpected', f"{type(e).__name__}: {e}",
                                 time.time() - start_time)

    logger.info(f"Job {spec.index}: wrote {spec.output_path.name} "
                f"({human_readable_size(len(encoded))} -> {human_readable_size(len(artifact))}), "
                f"fractal_ratio={outcome.score:.4f} after {outcome.attempts} attempts")

    return JobResult(
        index=spec.index,
        status='succeeded',
        path=str(spec.output_path),
        size_bytes=len(artifact),
        score=outcome.score,
        attempts=outcome.attempts,
        viewport=outcome.viewport.to_dict(),
        duration=time.time() - start_time,
    )


@dataclass
class RunSummary:
    """Per-job results of a generation run, ordered by job index."""
    results: List[JobResult] = field(default_factory=list)
    interrupted: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def exit_code(self) -> int:
        return 0 if self.failed == 0 and not self.interrupted else 1

    def failures_by_kind(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for result in self.results:
            if not result.succeeded:
                counts[result.failure_kind] = counts.get(result.failure_kind, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_jobs': len(self.results),
            'succeeded': self.succeeded,
            'failed': self.failed,
            'interrupted': self.interrupted,
            'failures_by_kind': self.failures_by_kind(),
            'total_bytes': sum(r.size_bytes or 0 for r in self.results),
        }


class FixtureGenerator:
    """Runs a batch of independent generation jobs."""

    def __init__(self, config: Optional[GenerationConfig] = None):
        """
        Initialize generator.

        Args:
            config: Generation configuration (uses defaults if None)
        """
        self.config = config or GenerationConfig()
        self.config.validate()

        self.job_workers = self.config.job_workers or get_optimal_process_count()
        self.render_threads = self.config.render_threads or max(1, (os.cpu_count() or 1) // self.job_workers)

        logger.info(f"FixtureGenerator initialized: {self.job_workers} job workers, "
                    f"{self.render_threads} render threads each, backend={self.config.backend}")

    def create_jobs(self, count: int) -> List[JobSpec]:
        """
        Create job specifications with independent random streams.

        The same seed yields the same streams; file names carry a run token
        so separate runs never overwrite each other.
        """
        if count < 1:
            raise ConfigurationError(f"count must be >= 1, got {count}")

        root = np.random.SeedSequence(self.config.seed)
        run_token = f"{time.strftime('%Y%m%d%H%M%S')}{root.generate_state(1)[0]:08x}"[:20]
        codec = get_codec(self.config.image_format, **self.config.codec_options())
        output_dir = Path(self.config.output_dir)

        return [
            JobSpec(
                index=index,
                seed=child,
                output_path=output_dir / f"fractal_{run_token}_{index:05d}{codec.extension}",
                config=self.config,
                render_threads=self.render_threads,
            )
            for index, child in enumerate(root.spawn(count))
        ]

    def run(self, count: int, preview: bool = False) -> RunSummary:
        """
        Generate ``count`` fixtures.

        Args:
            count: Number of images
            preview: Open each finished image in the default viewer

        Returns:
            RunSummary sorted by job index

        Raises:
            ConfigurationError: if the codec fails its trailing-data check
        """
        codec = get_codec(self.config.image_format, **self.config.codec_options())
        verify_trailing_tolerance(codec)

        specs = self.create_jobs(count)
        Path(self.config.output_dir).mkdir(parents=True, exist_ok=True)

        start_time = time.time()
        logger.info(f"Generating {count} images into {self.config.output_dir}")

        if self.job_workers == 1 or count == 1:
            results, interrupted = self._run_inline(specs, preview)
        else:
            results, interrupted = self._run_parallel(specs, preview)

        summary = RunSummary(sorted(results.values(), key=lambda r: r.index), interrupted)
        logger.info(f"Run complete in {time.time() - start_time:.2f}s: "
                    f"{summary.succeeded} succeeded, {summary.failed} failed")
        return summary

    def _run_inline(self, specs: List[JobSpec], preview: bool):
        results: Dict[int, JobResult] = {}
        interrupted = False

        for spec in specs:
            try:
                result = run_job(spec)
            except KeyboardInterrupt:
                logger.warning("Interrupted: skipping remaining jobs")
                interrupted = True
                break
            self._record(result, results, preview)

        if interrupted:
            self._mark_cancelled(specs, results)
        return results, interrupted

    def _run_parallel(self, specs: List[JobSpec], preview: bool):
        results: Dict[int, JobResult] = {}
        interrupted = False

        executor = ProcessPoolExecutor(max_workers=self.job_workers)
        futures = {executor.submit(run_job, spec): spec for spec in specs}
        try:
            try:
                for future in as_completed(futures):
                    if not self._collect(futures[future], future, results, preview):
                        # Ctrl-C reaches the workers too
                        interrupted = True
                        break
            except KeyboardInterrupt:
                interrupted = True

            if interrupted:
                logger.warning("Interrupted: cancelling pending jobs, waiting for running jobs")
                executor.shutdown(wait=True, cancel_futures=True)
                for future, spec in futures.items():
                    if spec.index not in results and not future.cancelled():
                        self._collect(spec, future, results, preview=False)
                self._mark_cancelled(specs, results)
        finally:
            executor.shutdown(wait=True)

        return results, interrupted

    def _collect(self, spec: JobSpec, future, results: Dict[int, JobResult], preview: bool) -> bool:
        """Record a finished future; returns False if the worker was interrupted."""
        try:
            result = future.result()
        except KeyboardInterrupt:
            logger.warning(f"Job {spec.index} was interrupted")
            self._record(JobResult.failure(spec.index, 'cancelled', "job was interrupted"), results, False)
            return False
        except Exception as e:
            # Worker died (e.g. BrokenProcessPool); siblings still report
            logger.error(f"Job {spec.index} crashed: {e}")
            result = JobResult.failure(spec.index, 'unexpected', f"{type(e).__name__}: {e}")
        self._record(result, results, preview)
        return True

    def _record(self, result: JobResult, results: Dict[int, JobResult], preview: bool) -> None:
        results[result.index] = result
        if preview and result.succeeded:
            preview_image(Path(result.path))

    @staticmethod
    def _mark_cancelled(specs: List[JobSpec], results: Dict[int, JobResult]) -> None:
        for spec in specs:
            if spec.index not in results:
                results[spec.index] = JobResult.failure(spec.index, 'cancelled', "job did not run")


def get_optimal_process_count() -> int:
    """Get optimal number of job processes, leaving one core for the system."""
    return max(1, (os.cpu_count() or 1) - 1)
