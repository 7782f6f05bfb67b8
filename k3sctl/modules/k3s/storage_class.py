"""Default StorageClass transition.

Making a class the cluster default is a two-phase operation:

1. demote every other class currently marked default
2. promote the target class

All demotions finish before the promotion is sent. The API server offers no
multi-object transaction, so the read-then-patch sequence is best effort: two
wizard runs racing against the same cluster can both read the old state and
leave two classes marked default. Re-running the wizard converges again.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from kubernetes.client.rest import ApiException

from .errors import CompileError
from .manifests import DEFAULT_CLASS_ANNOTATION
from .models import StorageClassState

logger = logging.getLogger("k3s.storage_class")

BETA_DEFAULT_CLASS_ANNOTATION = 'storageclass.beta.kubernetes.io/is-default-class'


def is_default_class(annotations: Optional[Dict[str, str]]) -> bool:
    annotations = annotations or {}
    return any(
        str(annotations.get(key, '')).lower() == 'true'
        for key in (DEFAULT_CLASS_ANNOTATION, BETA_DEFAULT_CLASS_ANNOTATION)
    )


def _list_classes(storage_api) -> Dict[str, Any]:
    return {item.metadata.name: item for item in storage_api.list_storage_class().items}


def _states_of(items: Dict[str, Any]) -> Dict[str, StorageClassState]:
    return {
        name: StorageClassState.DEFAULT if is_default_class(item.metadata.annotations)
        else StorageClassState.NON_DEFAULT
        for name, item in items.items()
    }


def read_states(storage_api) -> Dict[str, StorageClassState]:
    """Read the default flag of every storage class.

    Args:
        storage_api: A ``kubernetes.client.StorageV1Api`` (or compatible) instance
    """
    return _states_of(_list_classes(storage_api))


def plan_transition(
    states: Dict[str, StorageClassState], target: str
) -> Tuple[List[str], Optional[str]]:
    """Work out which classes to demote and whether to promote ``target``.

    More than one pre-existing default is tolerated; all of them are demoted.

    Returns:
        tuple: (classes to demote in name order, class to promote or None)

    Raises:
        CompileError: If ``target`` does not exist
    """
    if target not in states:
        raise CompileError('class_name', f"storage class {target!r} does not exist")

    demote = sorted(
        name for name, state in states.items()
        if name != target and state is StorageClassState.DEFAULT
    )
    promote = target if states[target] is not StorageClassState.DEFAULT else None
    return demote, promote


def transition(states: Dict[str, StorageClassState], target: str) -> Dict[str, StorageClassState]:
    """Return the states after making ``target`` the only default."""
    demote, promote = plan_transition(states, target)
    result = dict(states)
    for name in demote:
        result[name] = StorageClassState.NON_DEFAULT
    if promote:
        result[promote] = StorageClassState.DEFAULT
    return result


def _default_patch(is_default: bool, with_beta: bool = False) -> Dict:
    value = 'true' if is_default else 'false'
    annotations = {DEFAULT_CLASS_ANNOTATION: value}
    if with_beta:
        annotations[BETA_DEFAULT_CLASS_ANNOTATION] = value
    return {'metadata': {'annotations': annotations}}


def set_default_class(storage_api, target: str) -> Dict[str, StorageClassState]:
    """Make ``target`` the single default storage class.

    Demotions are patched one by one and must all succeed before the target
    is promoted. Running it again on a converged cluster sends no patches.

    Args:
        storage_api: A ``kubernetes.client.StorageV1Api`` (or compatible) instance
        target: Name of the class to promote

    Returns:
        The storage class states after the transition

    Raises:
        CompileError: If ``target`` does not exist
        ApiException: If a patch is rejected by the API server
    """
    items = _list_classes(storage_api)
    states = _states_of(items)
    demote, promote = plan_transition(states, target)

    if not demote and not promote:
        logger.info("StorageClass %s is already the only default", target)
        return states

    for name in demote:
        with_beta = BETA_DEFAULT_CLASS_ANNOTATION in (items[name].metadata.annotations or {})
        logger.info("Demoting default StorageClass %s", name)
        try:
            storage_api.patch_storage_class(name, _default_patch(False, with_beta))
        except ApiException as e:
            logger.error("Failed to demote StorageClass %s: %s", name, e.reason)
            raise

    if promote:
        logger.info("Marking StorageClass %s as default", promote)
        storage_api.patch_storage_class(promote, _default_patch(True))

    return transition(states, target)


def find_conflicting_class(storage_api, name: str, provisioner: str) -> Optional[str]:
    """Return the provisioner of an existing class ``name`` owned by someone else."""
    item = _list_classes(storage_api).get(name)
    if item is not None and item.provisioner != provisioner:
        return item.provisioner
    return None
