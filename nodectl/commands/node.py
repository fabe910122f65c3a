import logging

import typer

from nodectl.errors import NodeCtlError
from nodectl.modules.node_add import add_node
from nodectl.modules.powershell import PowerShellResolver
from nodectl.modules.provision import MultipassProvisioner
from nodectl.registry import get_profile_store

app = typer.Typer(help="Add and inspect the nodes of a cluster.")
logger = logging.getLogger("nodectl.commands.node")

OS_HELP = (
    "OS of the node to add in the format 'os=OS_TYPE,version=VERSION', "
    "e.g. 'os=windows,version=2022'. Valid options for OS_TYPE are: linux, windows. "
    "Not needed when adding a linux node."
)


def _resolver(ctx: typer.Context) -> PowerShellResolver:
    obj = ctx.find_root().obj or {}
    return obj.get("resolver") or PowerShellResolver()


@app.command("add")
def add_node_cmd(
    ctx: typer.Context,
    profile: str = typer.Option(..., "--profile", "-p", help="Cluster profile name"),
    control_plane: bool = typer.Option(
        False, "--control-plane",
        help="If set, added node will become a control-plane. Only supported for existing HA clusters."
    ),
    worker: bool = typer.Option(True, "--worker/--no-worker", help="If set, added node will be available as worker."),
    delete_on_failure: bool = typer.Option(
        False, "--delete-on-failure", help="If set, delete the current cluster if start fails and try again."
    ),
    os_flag: str = typer.Option("", "--os", help=OS_HELP),
):
    """Adds a node to the given cluster config, and starts it."""
    store = get_profile_store()
    try:
        cluster = store.load_profile(profile)
        node = add_node(
            cluster,
            os_flag,
            control_plane=control_plane,
            worker=worker,
            delete_on_failure=delete_on_failure,
            provisioner=MultipassProvisioner(resolver=_resolver(ctx)),
            store=store,
        )
    except NodeCtlError as e:
        logger.debug("node add failed", exc_info=True)
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=e.exit_code)

    typer.echo(f"✅ Successfully added {node.name} to {cluster.name}!")


@app.command("list")
def list_nodes_cmd(profile: str = typer.Option(..., "--profile", "-p", help="Cluster profile name")):
    """List the nodes of a cluster."""
    try:
        cluster = get_profile_store().load_profile(profile)
    except NodeCtlError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=e.exit_code)

    for node in cluster.nodes:
        name = cluster.machine_name(node)
        roles = ",".join(node.roles) or "-"
        typer.echo(f"{name}\t{node.ip or '-'}\t{roles}\t{node.os}")
