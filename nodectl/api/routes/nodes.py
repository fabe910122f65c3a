from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from nodectl.errors import NodeCtlError, PreconditionError, ProfileNotFoundError, UsageError
from nodectl.modules.node_add import add_node
from nodectl.modules.powershell import PowerShellResolver
from nodectl.modules.provision import MultipassProvisioner, Provisioner
from nodectl.registry import ProfileStore, get_profile_store

router = APIRouter()


class AddNodeRequest(BaseModel):
    profile: str
    os: str = ""
    control_plane: bool = False
    worker: bool = True
    delete_on_failure: bool = False


class NodeResponse(BaseModel):
    name: str
    machine: str
    roles: List[str]
    os: str
    os_version: str
    ip: str


@lru_cache()
def get_resolver() -> PowerShellResolver:
    return PowerShellResolver()


def get_provisioner() -> Provisioner:
    return MultipassProvisioner(resolver=get_resolver())


def get_store() -> ProfileStore:
    return get_profile_store()


def _status_for(error: NodeCtlError) -> int:
    if isinstance(error, ProfileNotFoundError):
        return 404
    if isinstance(error, (UsageError, PreconditionError)):
        return 400
    return 500


@router.post("/nodes", response_model=NodeResponse)
def create_node(
    req: AddNodeRequest,
    provisioner: Provisioner = Depends(get_provisioner),
    store: ProfileStore = Depends(get_store),
):
    try:
        cluster = store.load_profile(req.profile)
        node = add_node(
            cluster,
            req.os,
            control_plane=req.control_plane,
            worker=req.worker,
            delete_on_failure=req.delete_on_failure,
            provisioner=provisioner,
            store=store,
        )
    except NodeCtlError as e:
        raise HTTPException(status_code=_status_for(e), detail=str(e))

    return NodeResponse(
        name=node.name,
        machine=cluster.machine_name(node),
        roles=node.roles,
        os=node.os,
        os_version=node.os_version,
        ip=node.ip,
    )


@router.get("/nodes/{profile}")
def list_nodes(profile: str, store: ProfileStore = Depends(get_store)):
    try:
        cluster = store.load_profile(profile)
    except NodeCtlError as e:
        raise HTTPException(status_code=_status_for(e), detail=str(e))
    return [dict(node.to_dict(), machine=cluster.machine_name(node)) for node in cluster.nodes]
