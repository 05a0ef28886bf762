#!/usr/bin/env python3
"""
adspot - Broadcast Ad Detection - CLI Entry Point

Usage:
    python main.py describe <video_dir> [options]
    python main.py match <broadcast> <descriptor_dir> [options]
    python main.py detect <nearest_file> <ad_directory> [options]
    python main.py run <broadcast> <descriptor_dir> [options]
"""

import logging
from pathlib import Path

import click

from adspot import __version__
from adspot.config import load_config
from adspot.errors import AdSpotError


def _pipeline(ctx: click.Context, output_dir: Path):
    from adspot.pipeline import Pipeline

    return Pipeline(ctx.obj["config"], output_dir, progress=ctx.obj["progress"])


def _fail(ctx: click.Context, command: str, err: AdSpotError) -> None:
    logging.getLogger("adspot").debug("%s failed: %s", command, err.to_dict())
    click.echo(f"[{command}:error] {err}", err=True)
    ctx.exit(err.exit_code)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Custom config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--no-progress", is_flag=True, help="Hide progress bars")
@click.pass_context
def cli(ctx, config, verbose, no_progress):
    """adspot - Find known advertisements inside recorded broadcasts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(Path(config) if config else None)
    except AdSpotError as e:
        _fail(ctx, "config", e)
    ctx.obj["progress"] = not no_progress


@cli.command()
@click.argument("video_dir", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Descriptor output directory")
@click.option("--extension", "-e", default=None, help="Video file extension (default from config)")
@click.pass_context
def describe(ctx, video_dir, output, extension):
    """Write fingerprint descriptors for every video in a directory.

    VIDEO_DIR: Directory holding the ad videos (not searched recursively)
    """
    video_dir = Path(video_dir)
    output_dir = Path(output) if output else video_dir.parent / f"{video_dir.name}_descriptors"

    click.echo(f"Describing videos in: {video_dir}")
    click.echo(f"Output directory: {output_dir}")
    try:
        sequences = _pipeline(ctx, output_dir).describe_videos(video_dir, extension=extension)
    except AdSpotError as e:
        _fail(ctx, "describe", e)

    for seq in sequences:
        click.echo(f"  {seq.name}: {seq.total_frames} frames, {seq.sampled_frames} sampled")
    click.echo(f"All {len(sequences)} videos have been processed.")


@cli.command()
@click.argument("broadcast", type=click.Path(exists=True, dir_okay=False))
@click.argument("descriptor_dir", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Output directory")
@click.pass_context
def match(ctx, broadcast, descriptor_dir, output):
    """Find the nearest ad frame for every sampled broadcast frame.

    BROADCAST: Broadcast video, or its descriptor file

    DESCRIPTOR_DIR: Directory holding the ad descriptors
    """
    broadcast = Path(broadcast)
    output_dir = Path(output) if output else broadcast.parent / f"{broadcast.stem}_output"

    pipeline = _pipeline(ctx, output_dir)
    try:
        nearest = pipeline.match(broadcast, Path(descriptor_dir))
    except AdSpotError as e:
        _fail(ctx, "match", e)

    click.echo(f"Matched {len(nearest.matches)} frames of {nearest.broadcast}")
    click.echo(f"Nearest frames: {pipeline.nearest_path}")


@cli.command()
@click.argument("nearest_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("ad_directory", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Output directory (default: next to NEAREST_FILE)")
@click.option("--format", "fmt", type=click.Choice(["tsv", "json"]), default="tsv", help="Results format")
@click.pass_context
def detect(ctx, nearest_file, ad_directory, output, fmt):
    """Turn a nearest-frames file into detected ad airings.

    NEAREST_FILE: Output of the match command

    AD_DIRECTORY: Ad directory file written by the describe command
    """
    nearest_file = Path(nearest_file)
    output_dir = Path(output) if output else nearest_file.parent

    try:
        emitter = _pipeline(ctx, output_dir).detect(nearest_file, Path(ad_directory), fmt=fmt)
    except AdSpotError as e:
        _fail(ctx, "detect", e)

    _echo_detections(emitter)


@cli.command()
@click.argument("broadcast", type=click.Path(exists=True, dir_okay=False))
@click.argument("descriptor_dir", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Output directory")
@click.option("--format", "fmt", type=click.Choice(["tsv", "json"]), default="tsv", help="Results format")
@click.pass_context
def run(ctx, broadcast, descriptor_dir, output, fmt):
    """Match a broadcast against all ads and report detected airings.

    BROADCAST: Broadcast video, or its descriptor file

    DESCRIPTOR_DIR: Directory holding the ad descriptors
    """
    broadcast = Path(broadcast)
    output_dir = Path(output) if output else broadcast.parent / f"{broadcast.stem}_output"

    click.echo(f"Processing: {broadcast}")
    click.echo(f"Output directory: {output_dir}")
    try:
        emitter = _pipeline(ctx, output_dir).run(broadcast, Path(descriptor_dir), fmt=fmt)
    except AdSpotError as e:
        _fail(ctx, "run", e)

    _echo_detections(emitter)
    click.echo("Processing complete!")


@cli.command()
@click.argument("video_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def info(ctx, video_path):
    """Show video metadata."""
    from adspot.utils.video_io import get_video_info

    try:
        meta = get_video_info(video_path)
    except AdSpotError as e:
        _fail(ctx, "info", e)

    click.echo(f"adspot v{__version__}")
    click.echo("-" * 40)
    for key, value in meta.items():
        click.echo(f"{key}: {value}")


def _echo_detections(emitter) -> None:
    click.echo(f"\nDetections in {emitter.broadcast}: {len(emitter)}")
    for d in emitter:
        click.echo(f"  {d.start_seconds:9.3f}s  {d.ad_name} ({d.duration_seconds:.3f}s)")


if __name__ == "__main__":
    cli()
