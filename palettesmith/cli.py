"""
PaletteSmith CLI - Command-line interface for building texture palettes
"""

import click
import logging
import sys
from pathlib import Path

from palettesmith.engine import Palettizer
from palettesmith.exceptions import AssignmentInvariantError, ConfigError, PalettizeError, ReadError
from palettesmith.session import SessionStore, default_session_path


@click.group()
@click.version_option()
def cli():
    """
    PaletteSmith - Pack model textures into shared palette images.

    Examples:
        palettesmith run textures.txa models/*.json -o build
        palettesmith report textures.session.json
    """
    pass


@cli.command()
@click.argument('rules', type=click.Path(exists=True, dir_okay=False))
@click.argument('models', nargs=-1, type=click.Path(dir_okay=False))
@click.option('-o', '--install-dir', default=None, help='Root directory for generated images')
@click.option('-d', '--model-dir', default=None, help='Write rewritten models here instead of in place')
@click.option('-g', '--default-group', default=None, help='Group for models the rules file does not name')
@click.option('--session', default=None, help='Session file (default: RULES with .session.json suffix)')
@click.option('--all', 'all_textures', is_flag=True, help='Re-place every texture in the session, not just these models')
@click.option('--redo', is_flag=True, help='Regenerate every image and rewrite every model')
@click.option('--force-read', is_flag=True, help='Decode every source image instead of trusting cached sizes')
@click.option('--reset', is_flag=True, help='Discard the previous packing and lay out palettes afresh')
@click.option('--optimal', is_flag=True, help='Shrink palette images to the smallest power of two that fits')
@click.option('--verbose', '-v', is_flag=True, help='Show detailed progress')
def run(rules, models, install_dir, model_dir, default_group, session, all_textures, redo,
        force_read, reset, optimal, verbose):
    """
    Assign textures to groups, pack palettes and rewrite models.

    Examples:
        palettesmith run textures.txa town.json forest.json -o build
        palettesmith run textures.txa --all --redo
        palettesmith run textures.txa new.json -g shared --optimal -v
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')

    try:
        store = SessionStore(session or default_session_path(rules))
        pal = store.restore() or Palettizer()

        settings = pal.settings
        if install_dir is not None:
            settings.install_dir = install_dir
        if model_dir is not None:
            settings.model_dir = model_dir
        if default_group is not None:
            settings.default_group = default_group

        pal.read_rules(rules)

        okflag = True
        for filename in models:
            if not pal.add_model_file(filename):
                okflag = False

        if verbose:
            click.echo(f"Processing {len(pal.command_line_models)} models with {Path(rules).name}")

        if all_textures:
            pal.process_all(force_read)
        else:
            pal.process_command_line_models(force_read)

        if reset:
            pal.reset_images()
        if optimal:
            pal.optimal_resize()

        if not pal.generate_images(redo):
            okflag = False
        if not pal.read_stale_models(redo):
            okflag = False
        if not pal.write_models():
            okflag = False

        store.persist(pal)

        if verbose:
            click.echo("\n" + pal.report())

        if not okflag:
            click.secho("Finished with errors", fg='red', err=True)
            sys.exit(1)

        click.secho(f"✓ Success! Palettized {len(pal.textures)} textures", fg='green')

    except ConfigError as e:
        click.secho(f"Config Error: {e}", fg='red', err=True)
        sys.exit(1)
    except ReadError as e:
        click.secho(f"Read Error: {e}", fg='red', err=True)
        sys.exit(1)
    except AssignmentInvariantError as e:
        click.secho(f"Internal Error: {e}", fg='red', err=True)
        sys.exit(1)
    except PalettizeError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.argument('session', type=click.Path(exists=True, dir_okay=False))
def report(session):
    """
    Print what a saved session knows about groups, textures and models.

    Examples:
        palettesmith report textures.session.json
    """
    try:
        pal = SessionStore(session).restore()
        click.echo(pal.report(), nl=False)
    except ReadError as e:
        click.secho(f"Read Error: {e}", fg='red', err=True)
        sys.exit(1)


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
