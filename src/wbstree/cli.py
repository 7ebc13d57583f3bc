"""
Command Line Interface for the WBS tree engine.
"""

import asyncio
import functools
import re
from pathlib import Path

import click
import pydantic

from .aggregate import aggregate, find_inconsistencies, project_statistics
from .config import Settings
from .data import YamlProjectStore
from .distribute import DistributionStrategy, children_allocations, distribute
from .errors import WBSError
from .models import NodePath, NodeType, Project, TaskStatus, require_node
from .service import ProjectOperations
from .version import VERSION
from .view import TreeView

SLASH_PATH = re.compile(r'^\d+(?:/\d+){0,2}$')

MARKERS = {True: "▾", False: "▸"}


def _resolve_path(project_id: str, text: str) -> NodePath:
    """Accept either a node id (task-p1-0-0-1) or slash indices (0/0/1)."""
    if SLASH_PATH.match(text):
        indices = tuple(int(i) for i in text.split('/'))
        return NodePath(NodeType.at_level(len(indices)), project_id, indices)
    return NodePath.parse(text)


def _run(coro):
    return asyncio.run(coro)


def handle_errors(f):
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (WBSError, pydantic.ValidationError) as e:
            click.echo(f"❌ {e}", err=True)
            raise SystemExit(1)
    return wrapper


class ConsoleRenderer:
    """Renders flattened rows as an indented outline."""

    def __init__(self, show_ids: bool = False):
        self.show_ids = show_ids

    def format_row(self, item) -> str:
        node = item.data
        marker = MARKERS[item.is_expanded] if item.has_children else "•"
        line = f"{'  ' * item.level}{marker} {node.name}  [{node.completed}/{node.total} {node.progress}%]"
        status = getattr(node, 'status', None)
        if item.node_type is NodeType.TASK or status not in (None, TaskStatus.DRAFT):
            line += f" ({status.value})"
        if self.show_ids:
            line += f"  {item.path}"
        return line

    def render(self, items, toggle_expand, on_item_click):
        for item in items:
            click.echo(self.format_row(item))


def _store(settings: Settings) -> YamlProjectStore:
    return YamlProjectStore(settings.data_dir)


def _operations(settings: Settings) -> ProjectOperations:
    return ProjectOperations(_store(settings))


@click.group()
@click.version_option(version=VERSION, prog_name="wbs")
@click.option('--data-dir', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Directory holding project files (default: $WBSTREE_DATA_DIR or .wbs)')
@click.pass_context
def main(ctx, data_dir):
    """
    wbs - work breakdown progress tracking.

    Projects are split into packages, subpackages and tasks; task progress
    rolls up to every level above it.
    """
    settings = Settings.from_env()
    if data_dir is not None:
        settings = settings.model_copy(update={'data_dir': data_dir})
    ctx.obj = settings


@main.command()
@click.argument('project_id')
@click.argument('name')
@click.pass_obj
@handle_errors
def init(settings, project_id, name):
    """Create an empty project file."""
    store = _store(settings)
    if store.path_for(project_id).exists():
        click.echo(f"❌ Project {project_id} already exists", err=True)
        raise SystemExit(1)
    store.save(project_id, Project(id=project_id, name=name))
    click.echo(f"✅ Created project {project_id} in {settings.data_dir}")


@main.command('list')
@click.pass_obj
@handle_errors
def list_cmd(settings):
    """List the projects in the data directory."""
    store = _store(settings)
    project_ids = store.list_projects()
    if not project_ids:
        click.echo(f"📭 No projects in {settings.data_dir}")
        return
    for project_id in project_ids:
        project = store.load(project_id)
        click.echo(f"📋 {project_id}  {project.name}  [{project.completed}/{project.total} {project.progress}%]")


@main.command()
@click.argument('project_id')
@click.option('-s', '--search', default=None, help='Only show nodes matching this text (and their parents)')
@click.option('-l', '--level', type=click.IntRange(0, 4), default=None, help='Expand the first N levels')
@click.option('--expand-all', is_flag=True, help='Expand as much as the configured bound allows')
@click.option('--offset', type=click.IntRange(0), default=0, help='First row to print')
@click.option('--limit', type=click.IntRange(0), default=None, help='Number of rows to print')
@click.option('--ids', is_flag=True, help='Print node ids')
@click.pass_obj
@handle_errors
def show(settings, project_id, search, level, expand_all, offset, limit, ids):
    """Print the project tree."""
    project = _run(_operations(settings).load_project(project_id))
    view = TreeView(aggregate(project), settings)
    if level is not None:
        view.collapse_all()
        view.expand_to_level(level)
    if expand_all:
        for _ in NodeType:
            view.expand_all()
    view.set_search(search)
    view.render(ConsoleRenderer(show_ids=ids), offset, limit)
    if not view.items:
        click.echo("📭 Nothing matches")


@main.command()
@click.argument('project_id')
@click.pass_obj
@handle_errors
def stats(settings, project_id):
    """Show counts and rolled-up progress."""
    project = _run(_operations(settings).load_project(project_id))
    s = project_statistics(project)
    click.echo(f"📋 {project.name} ({project.id})")
    click.echo(f"   📦 Packages: {s.package_count}")
    click.echo(f"   🗂️  Subpackages: {s.subpackage_count}")
    click.echo(f"   ✅ Tasks: {s.task_count}")
    for status, count in s.tasks_by_status.items():
        if count:
            click.echo(f"      {status}: {count}")
    click.echo(f"   📈 Progress: {s.completed}/{s.total} ({s.progress}%)")


@main.command()
@click.argument('project_id')
@click.pass_obj
@handle_errors
def check(settings, project_id):
    """Report stored quantities that disagree with a roll-up."""
    project = _run(_operations(settings).load_project(project_id))
    errors = find_inconsistencies(project)
    if not errors:
        click.echo("✅ Quantities are consistent")
        return
    for error in errors:
        click.echo(f"⚠️  {error}")
    click.echo("💡 Run 'wbs rollup' to recompute them")
    raise SystemExit(1)


@main.command()
@click.argument('project_id')
@click.pass_obj
@handle_errors
def rollup(settings, project_id):
    """Recompute and save quantities at every level."""
    ops = _operations(settings)
    project = _run(ops.rollup(_run(ops.load_project(project_id))))
    click.echo(f"✅ Rolled up: {project.completed}/{project.total} ({project.progress}%)")


def _report_cascade(before: Project, after: Project, node_path: NodePath):
    for parent_path in node_path.ancestors():
        if parent_path.node_type is NodeType.PROJECT:
            break
        old = require_node(before, parent_path)
        new = require_node(after, parent_path)
        if old.status is not new.status:
            click.echo(f"⬆️  {new.name}: {new.status.value}")


@main.command()
@click.argument('project_id')
@click.argument('path')
@click.option('-s', '--submitter', 'submitters', multiple=True, help='User allowed to submit progress')
@click.option('-r', '--reviewer', 'reviewers', multiple=True, help='User allowed to review')
@click.pass_obj
@handle_errors
def assign(settings, project_id, path, submitters, reviewers):
    """Assign submitters and reviewers to a task, or reviewers to a (sub)package."""
    ops = _operations(settings)
    node_path = _resolve_path(project_id, path)
    project = _run(ops.load_project(project_id))
    if node_path.node_type is NodeType.TASK:
        project = _run(ops.assign_task(project, node_path, submitters, reviewers))
    else:
        if submitters:
            click.echo(f"❌ Only tasks take submitters, {node_path} is a {node_path.node_type.value}", err=True)
            raise SystemExit(1)
        project = _run(ops.assign_reviewers(project, node_path, reviewers))
    node = require_node(project, node_path)
    click.echo(f"✅ {node.name}: {node.status.value}")


@main.command()
@click.argument('project_id')
@click.argument('path')
@click.argument('completed', type=int)
@click.argument('total', type=int)
@click.pass_obj
@handle_errors
def submit(settings, project_id, path, completed, total):
    """Submit progress on a task."""
    ops = _operations(settings)
    node_path = _resolve_path(project_id, path)
    before = _run(ops.load_project(project_id))
    project = _run(ops.submit_task_progress(before, node_path, completed, total))
    task = require_node(project, node_path)
    click.echo(f"✅ {task.name}: {task.completed}/{task.total} ({task.status.value})")
    _report_cascade(before, project, node_path)


@main.command()
@click.argument('project_id')
@click.argument('path')
@click.option('--approve/--reject', required=True, help='Review outcome')
@click.option('-m', '--comment', default=None, help='Review comment (required to reject)')
@click.pass_obj
@handle_errors
def review(settings, project_id, path, approve, comment):
    """Approve or reject a submitted task, subpackage or package."""
    ops = _operations(settings)
    node_path = _resolve_path(project_id, path)
    before = _run(ops.load_project(project_id))
    project = _run(ops.review_task(before, node_path, approve, comment))
    node = require_node(project, node_path)
    click.echo(f"✅ {node.name}: {node.status.value}")
    _report_cascade(before, project, node_path)


@main.command('distribute')
@click.argument('project_id')
@click.argument('path')
@click.argument('total', type=int)
@click.option('--strategy', type=click.Choice([s.value for s in DistributionStrategy]), default='equal',
              help='How to split the total')
@click.option('-a', '--alloc', 'allocations', type=int, multiple=True,
              help='Allocation per child, in order (manual strategy)')
@click.pass_obj
@handle_errors
def distribute_cmd(settings, project_id, path, total, strategy, allocations):
    """Split a package or subpackage total across its children."""
    ops = _operations(settings)
    node_path = _resolve_path(project_id, path)
    project = _run(ops.load_project(project_id))
    parent = require_node(project, node_path)
    request = distribute(total, children_allocations(parent), strategy, list(allocations) or None)
    project = _run(ops.distribute_quantity(project, node_path, request))
    for allocation in request.distributions:
        click.echo(f"   {allocation.name}: {allocation.allocated}")
    click.echo(f"✅ Distributed {total} under {require_node(project, node_path).name}")

if __name__ == "__main__":
    main()
