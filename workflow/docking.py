"""
Docking-id derivation.

Every load point "<id>_load" on the robot map has an approach pose named
"<id>_load_docking"; the workflow always drives to the docking pose.
"""
from interfaces.task_workflow_interface import UnresolvedReferenceError


DEFAULT_MARKER = "_load"
DEFAULT_REPLACEMENT = "_load_docking"


def derive_docking_id(poi_id: str, marker: str = DEFAULT_MARKER,
                      replacement: str = DEFAULT_REPLACEMENT) -> str:
    """
    Derive the docking point id for a load point id.

    Args:
        poi_id: Id of the load point (e.g. "001_load")
        marker: Substring identifying a load point
        replacement: Substring replacing the first occurrence of marker

    Returns:
        str: Docking id (e.g. "001_load_docking"); ids that already contain
        the replacement are returned unchanged

    Raises:
        UnresolvedReferenceError: If poi_id is empty or does not contain marker
    """
    if not poi_id:
        raise UnresolvedReferenceError("Cannot derive docking id: point id is empty")
    if replacement and replacement in poi_id:
        return poi_id
    if marker not in poi_id:
        raise UnresolvedReferenceError(
            f"Cannot derive docking id from '{poi_id}': expected it to contain '{marker}'"
        )
    return poi_id.replace(marker, replacement, 1)
