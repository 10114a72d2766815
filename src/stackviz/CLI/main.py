# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Command Line Interface for stackviz.
"""
import asyncio
import json
import os

import click

from ..exceptions import ParseError, ValidationError
from ..MANAGERS.deployment_state_machine import DeploymentState
from ..MANAGERS.layout_engine import LayoutEngine
from ..MANAGERS.stack_session import StackSession
from ..MANAGERS.view_filter import ViewFilter
from ..MODELS.graph_model import EdgeKind, GraphModel
from ..MODELS.settings import StackvizSettings
from ..PARSERS.compose_parser import ComposeParser
from ..UTILS.logging_setup import setup_logging, teardown_logging

VIEW_CHOICES = [kind.value for kind in EdgeKind] + ['none']


@click.group()
@click.option('--file', '-f', default='docker-compose.yml', help='Compose file path')
@click.option('--env-file', default='.env', help='Settings file with STACKVIZ_* variables')
@click.option('--log-level', default=None, help='Log level, e.g. DEBUG')
@click.pass_context
def cli(ctx, file, env_file, log_level):
    """
    stackviz - compose stack visualizer.

    Lays out the services of a compose file and deploys or kills the stack.
    """
    ctx.ensure_object(dict)
    settings = StackvizSettings(_env_file=env_file)
    if log_level:
        settings = settings.model_copy(update={'log_level': log_level.upper()})
    handler = setup_logging(settings.log_level)
    ctx.call_on_close(lambda: teardown_logging(handler))
    ctx.obj['file'] = file
    ctx.obj['settings'] = settings


def _require_file(ctx) -> str:
    file = ctx.obj['file']
    if not os.path.exists(file):
        click.echo(f"Error: {file} not found.")
        ctx.exit(1)
    return file


def _session(ctx) -> StackSession:
    return StackSession(
        backend=ctx.obj.get('backend'),
        settings=ctx.obj['settings'],
        show_error=lambda message: click.echo(f"Error: {message}"),
    )


def _report(session: StackSession):
    click.echo(f"Deployment: {session.state.value}")
    session.controller.show_error()


@cli.command()
@click.option('--ticks', default=300, show_default=True, help='Simulation ticks to run')
@click.option('--view', 'views', multiple=True, type=click.Choice(VIEW_CHOICES),
              help='Edge kinds to show (repeatable)')
@click.option('--json', 'as_json', is_flag=True, help='Print JSON')
@click.pass_context
def graph(ctx, ticks, views, as_json):
    """Lay out the service dependency graph."""
    file = _require_file(ctx)
    try:
        service_graph = GraphModel.from_manifest(ComposeParser().parse(file))
    except (ParseError, ValidationError) as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)

    view = ViewFilter()
    if views:
        view.set_view(None if 'none' in views else views)

    engine = LayoutEngine(ctx.obj['settings'])
    engine.load(service_graph)
    positions = engine.positions()
    for _ in range(ticks):
        positions = engine.tick(service_graph)
    edges = view.visible_edges(service_graph)

    if as_json:
        click.echo(json.dumps({
            'nodes': [{'name': name, 'x': round(p.x, 2), 'y': round(p.y, 2)} for name, p in positions.items()],
            'edges': [{'source': e.source, 'target': e.target, 'kind': e.kind.value} for e in edges],
        }, indent=2))
        return

    click.echo(f"{'SERVICE':20} {'X':>10} {'Y':>10}")
    click.echo("-" * 42)
    for name, p in positions.items():
        click.echo(f"{name:20} {p.x:10.1f} {p.y:10.1f}")
    if edges:
        click.echo("")
        for e in edges:
            click.echo(f"{e.source} -> {e.target} ({e.kind.value})")


@cli.command()
@click.pass_context
def status(ctx):
    """Check whether the stack is running."""
    file = _require_file(ctx)

    async def run():
        session = _session(ctx)
        session.open_manifest(file)
        await session.close()
        _report(session)
        return session

    _run(ctx, run)


@cli.command()
@click.pass_context
def up(ctx):
    """Deploy the stack."""
    file = _require_file(ctx)

    async def run():
        session = _session(ctx)
        session.select_file()
        session.open_manifest(file)
        await session.close()
        _report(session)
        return session

    _run(ctx, run)


@cli.command()
@click.pass_context
def down(ctx):
    """Kill the stack if it is running."""
    file = _require_file(ctx)

    async def run():
        session = _session(ctx)
        session.open_manifest(file)
        await session.controller.wait_idle()
        if session.state in (DeploymentState.RUNNING, DeploymentState.WARNING):
            session.controller.kill()
        await session.close()
        _report(session)
        return session

    _run(ctx, run)


@cli.command()
@click.option('--interval', '-i', type=float, default=None, help='Seconds between checks')
@click.option('--checks', '-n', default=0, help='Stop after this many checks (0: run until interrupted)')
@click.pass_context
def watch(ctx, interval, checks):
    """Watch the stack with periodic health checks."""
    file = _require_file(ctx)

    async def run():
        session = _session(ctx)
        if interval is not None:
            session.health_monitor.interval = interval
        done = asyncio.Event()
        monitor = session.health_monitor

        def on_change(snapshot):
            click.echo(f"Deployment: {snapshot.state.value}")
            if checks and monitor.checks_issued >= checks and snapshot.state is not DeploymentState.CHECKING:
                monitor.stop()
                done.set()

        session.controller.subscribe(on_change)
        session.open_manifest(file)
        await session.controller.wait_idle()
        monitor.start()
        try:
            await done.wait()
        finally:
            await session.close()

    _run(ctx, run)


def _run(ctx, coro_fn):
    try:
        session = asyncio.run(coro_fn())
    except (ParseError, ValidationError) as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)
    except KeyboardInterrupt:
        click.echo("\nStopped.")
        return
    # A failed check or deploy ends the command with a non-zero status
    if session is not None and session.state is DeploymentState.DEAD_ERROR:
        ctx.exit(1)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
