"""
Command-line interface for fixture generation and upload.

Exit status: 0 when every job succeeded, 1 when some jobs or uploads failed,
2 on a fatal configuration error.
"""

import click
import sys
import json
from pathlib import Path
import logging

from .. import __version__
from ..acceleration import is_numba_available
from ..errors import ConfigurationError
from ..io.config import ConfigManager, load_config_from_args

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_CONFIGURATION_ERROR = 2


def _fail_configuration(error: Exception) -> None:
    click.echo(f"Configuration error: {error}", err=True)
    sys.exit(EXIT_CONFIGURATION_ERROR)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--config', type=click.Path(exists=True, dir_okay=False), help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress most output')
@click.pass_context
def main(ctx, version, config, verbose, quiet):
    """
    Fractal fixtures - synthetic test images for CDN and cache benchmarks.

    Generates Mandelbrot images with controlled complexity, pads them with
    random bytes into a size window and uploads them to DigitalOcean Spaces.
    """
    # Setup logging
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO,
                            format='%(levelname)s: %(message)s')

    if version:
        click.echo(f"fractal-fixtures v{__version__}")
        click.echo(f"Python: {sys.version}")
        click.echo(f"Numba acceleration: {'Available' if is_numba_available() else 'Not available'}")

        if ctx.invoked_subcommand is None:
            sys.exit(EXIT_OK)

    if ctx.invoked_subcommand is None and not version:
        click.echo(ctx.get_help())
        sys.exit(EXIT_OK)

    # Store global options in context
    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config
    ctx.obj['verbose'] = verbose


@main.command()
@click.option('--count', '-c', type=click.IntRange(min=1), required=True, help='Number of images to generate')
@click.option('--preview', '-p', is_flag=True, help='Open each image after it is written')
@click.option('--seed', type=int, help='Seed for reproducible runs')
@click.option('--workers', type=click.IntRange(min=1), help='Number of job processes')
@click.option('--threads', type=click.IntRange(min=1), help='Render threads per job')
@click.option('--output-dir', '-o', type=click.Path(file_okay=False), help='Output directory')
@click.option('--format', 'image_format', type=click.Choice(['png', 'jpeg']), help='Image format')
@click.option('--backend', type=click.Choice(['numpy', 'numba']), help='Escape-time kernel')
@click.option('--palette', help='Color palette name')
@click.option('--max-attempts', type=int, help='Attempt budget per image')
@click.option('--summary-json', type=click.Path(dir_okay=False), help='Write the run summary as JSON')
@click.pass_context
def generate(ctx, count, preview, seed, workers, threads, output_dir, image_format, backend,
             palette, max_attempts, summary_json):
    """Generate COUNT fractal fixtures."""
    from ..api import FixtureGenerator

    overrides = {
        'seed': seed,
        'job_workers': workers,
        'render_threads': threads,
        'output_dir': output_dir,
        'image_format': image_format,
        'backend': backend,
        'palette': palette,
        'max_attempts': max_attempts,
    }

    try:
        _, generation_config = load_config_from_args(ctx.obj.get('config_file'), overrides)
        generator = FixtureGenerator(generation_config)
        summary = generator.run(count, preview=preview)
    except ConfigurationError as e:
        _fail_configuration(e)

    click.echo(f"\nGenerated {summary.succeeded}/{len(summary.results)} images "
               f"in {generation_config.output_dir}")
    if summary.interrupted:
        click.echo("Run was interrupted; remaining jobs were cancelled")

    for result in summary.results:
        if not result.succeeded:
            click.echo(f"  job {result.index:05d} failed [{result.failure_kind}]: {result.message}")

    if summary_json:
        with open(summary_json, 'w', encoding='utf-8') as f:
            json.dump({
                'summary': summary.to_dict(),
                'jobs': [result.__dict__ for result in summary.results],
            }, f, indent=2)
        click.echo(f"Summary written to {summary_json}")

    sys.exit(summary.exit_code)


@main.command()
@click.option('--folder', '-f', type=click.Path(file_okay=False),
              help='Folder to upload (default: generation.output_dir)')
@click.option('--ledger', '-l', type=click.Path(dir_okay=False), default='data/urls.csv',
              show_default=True, help='CSV ledger of uploaded URLs')
@click.option('--workers', type=click.IntRange(min=1), help='Concurrent uploads')
@click.pass_context
def upload(ctx, folder, ledger, workers):
    """Upload a folder of fixtures to Spaces and update the URL ledger."""
    from ..io.ledger import UrlLedger
    from ..io.storage import SpacesUploader

    try:
        config_dict, generation_config = load_config_from_args(ctx.obj.get('config_file'))
    except ConfigurationError as e:
        _fail_configuration(e)

    folder_path = Path(folder or generation_config.output_dir)
    if not folder_path.is_dir():
        logger.warning(f"No images to upload: {folder_path} does not exist")
        sys.exit(EXIT_OK)

    try:
        storage_config = ConfigManager().create_storage_config(config_dict)
        uploader = SpacesUploader(storage_config)
        report = uploader.upload_folder(folder_path, max_workers=workers)
    except ConfigurationError as e:
        _fail_configuration(e)

    rows = UrlLedger(ledger).merge(report.rows)

    click.echo(f"\nUploaded {report.succeeded} files, {report.failed} failed; "
               f"ledger {ledger} holds {len(rows)} rows")
    for key, message in report.failures:
        click.echo(f"  {key}: {message}")

    sys.exit(EXIT_PARTIAL_FAILURE if report.failures else EXIT_OK)


@main.command('verify-codec')
@click.option('--format', 'image_format', type=click.Choice(['png', 'jpeg']), default='png',
              show_default=True, help='Codec to check')
def verify_codec(image_format):
    """Check that a codec's decoder ignores appended bytes."""
    from ..rendering.image_output import get_codec, verify_trailing_tolerance

    try:
        verify_trailing_tolerance(get_codec(image_format))
    except ConfigurationError as e:
        _fail_configuration(e)

    click.echo(f"{image_format}: decoder ignores trailing data")


@main.command('list-palettes')
def list_palettes():
    """List available color palettes."""
    from ..rendering.coloring import ColoringEngine

    engine = ColoringEngine()
    click.echo("Available color palettes:")
    for name in engine.list_palettes():
        click.echo(f"  {name:10s} {engine.get_palette(name).name}")


if __name__ == '__main__':
    main()
