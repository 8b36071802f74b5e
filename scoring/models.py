"""Input models consumed by the scoring engine.

The design graph and the geometry measurements arrive as JSON from upstream
collaborators, so they are parsed with pydantic. Field aliases accept the wire
names used by the graph builder (``op``, ``depends_on``, ``root_id``...).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LENGTH_UNITS_TO_MM: Dict[str, float] = {
    "mm": 1.0,
    "cm": 10.0,
    "m": 1000.0,
    "in": 25.4,
    "inch": 25.4,
    "inches": 25.4,
}

# A blank unit is a dimensionless quantity and is treated as a count.
COUNT_UNITS = frozenset(
    {"", "count", "pcs", "qty", "n", "x", "#", "teeth", "ribs", "holes", "segments", "slots"}
)

RADIAL_OPERATIONS = frozenset({"cylinder", "sphere", "cone", "torus", "rotate_extrude"})

_FACE_KIND_ALIASES: Dict[str, str] = {
    "plane": "planar",
    "planar": "planar",
    "cylinder": "cylindrical",
    "cylindrical": "cylindrical",
    "cone": "conical",
    "conical": "conical",
    "sphere": "spherical",
    "spherical": "spherical",
    "torus": "toroidal",
    "toroidal": "toroidal",
}

_EDGE_KIND_ALIASES: Dict[str, str] = {
    "line": "line",
    "linear": "line",
    "circle": "circle",
    "circular": "circle",
    "ellipse": "ellipse",
    "elliptical": "ellipse",
}

RADIAL_FACE_KINDS = ("cylindrical", "spherical", "conical", "toroidal")


def is_length_unit(unit: str) -> bool:
    return unit.strip().lower() in LENGTH_UNITS_TO_MM


def is_count_unit(unit: str) -> bool:
    return unit.strip().lower() in COUNT_UNITS


def _normalise_histogram(raw: Dict[str, Any], aliases: Dict[str, str]) -> Dict[str, int]:
    # Anything the kernel reports that is not an analytic kind (BSPLINE, BEZIER,
    # OFFSET, REVOLUTION...) is grouped as free-form.
    histogram: Dict[str, int] = {}
    for name, count in raw.items():
        key = str(name).strip().lower().replace("-", "_")
        kind = aliases.get(key, "freeform")
        histogram[kind] = histogram.get(kind, 0) + int(count or 0)
    return histogram


class DesignParameter(BaseModel):
    """One named, bounded dimension of the design."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    value: float
    unit: str = ""
    min: Optional[float] = None
    max: Optional[float] = None
    locked: bool = False
    derived_from: Optional[str] = Field(default=None, alias="derivedFrom")

    @property
    def has_bounds(self) -> bool:
        return self.min is not None or self.max is not None

    def in_bounds(self) -> bool:
        if self.min is not None and self.value < self.min:
            return False
        if self.max is not None and self.value > self.max:
            return False
        return True


class DesignNode(BaseModel):
    """An operation node of the parametric dependency graph."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    operation: str = Field(alias="op")
    label: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    children: List[str] = Field(default_factory=list)
    depends_on: List[str] = Field(default_factory=list)


class DesignGraph(BaseModel):
    """Parametric dependency graph produced by the upstream graph builder."""

    model_config = ConfigDict(populate_by_name=True)

    parameters: Dict[str, DesignParameter] = Field(default_factory=dict)
    nodes: Dict[str, DesignNode] = Field(default_factory=dict)
    root_id: Optional[str] = None
    design_id: Optional[str] = None
    name: Optional[str] = None
    prompt: Optional[str] = None
    created_at: Optional[float] = None

    @field_validator("parameters", mode="before")
    @classmethod
    def _fill_parameter_keys(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        filled: Dict[str, Any] = {}
        for key, entry in value.items():
            if isinstance(entry, dict) and "key" not in entry:
                entry = {**entry, "key": key}
            filled[key] = entry
        return filled

    @field_validator("nodes", mode="before")
    @classmethod
    def _fill_node_ids(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        filled: Dict[str, Any] = {}
        for node_id, entry in value.items():
            if isinstance(entry, dict) and not entry.get("id"):
                entry = {**entry, "id": node_id}
            filled[node_id] = entry
        return filled

    @model_validator(mode="after")
    def _check_references(self) -> "DesignGraph":
        for node_id, node in self.nodes.items():
            missing = [key for key in node.depends_on if key not in self.parameters]
            if missing:
                raise ValueError(
                    f"Node '{node_id}' depends on unknown parameters: {', '.join(missing)}"
                )
            unknown_children = [child for child in node.children if child not in self.nodes]
            if unknown_children:
                raise ValueError(
                    f"Node '{node_id}' references unknown children: {', '.join(unknown_children)}"
                )
        if self.nodes and self.root_id is not None and self.root_id not in self.nodes:
            raise ValueError(f"Root node '{self.root_id}' is not defined.")
        cycle = self._find_cycle()
        if cycle:
            raise ValueError(f"Design graph contains a cycle: {' -> '.join(cycle)}")
        return self

    def _find_cycle(self) -> Optional[List[str]]:
        visiting: List[str] = []
        done: set[str] = set()

        def _visit(node_id: str) -> Optional[List[str]]:
            if node_id in visiting:
                return visiting[visiting.index(node_id):] + [node_id]
            if node_id in done:
                return None
            visiting.append(node_id)
            for child in self.nodes[node_id].children:
                found = _visit(child)
                if found:
                    return found
            visiting.pop()
            done.add(node_id)
            return None

        for node_id in sorted(self.nodes):
            found = _visit(node_id)
            if found:
                return found
        return None

    def has_radial_primitive(self) -> bool:
        return any(
            node.operation.strip().lower() in RADIAL_OPERATIONS for node in self.nodes.values()
        )


class GeometryMeasurements(BaseModel):
    """Snapshot of kernel-computed properties for one compiled shape.

    A payload carrying ``error`` means the measurements could not be computed
    and is treated exactly like absent measurements.
    """

    model_config = ConfigDict(populate_by_name=True)

    dimensions: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    volume: float = 0.0
    surface_area: float = 0.0
    face_count: int = 0
    edge_count: int = 0
    vertex_count: int = 0
    face_types: Dict[str, int] = Field(default_factory=dict)
    edge_types: Dict[str, int] = Field(default_factory=dict)
    is_valid: bool = False
    aspect_ratio: Optional[float] = None
    compactness: float = 0.0
    center_of_mass: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    symmetry_hint: float = 0.5
    error: Optional[str] = None

    @field_validator("face_types", mode="before")
    @classmethod
    def _normalise_face_types(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return _normalise_histogram(value, _FACE_KIND_ALIASES)
        return value

    @field_validator("edge_types", mode="before")
    @classmethod
    def _normalise_edge_types(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return _normalise_histogram(value, _EDGE_KIND_ALIASES)
        return value

    @property
    def available(self) -> bool:
        return self.error is None

    def face_type_count(self, kind: str) -> int:
        return self.face_types.get(kind, 0)

    def edge_type_count(self, kind: str) -> int:
        return self.edge_types.get(kind, 0)

    def face_type_variety(self) -> int:
        return sum(1 for count in self.face_types.values() if count > 0)

    def has_radial_faces(self) -> bool:
        return any(self.face_type_count(kind) > 0 for kind in RADIAL_FACE_KINDS)

    def nontrivial_dimensions(self) -> List[float]:
        """Bounding-box extents above 0.001, largest first."""
        return sorted((d for d in self.dimensions if d > 0.001), reverse=True)

    def effective_aspect_ratio(self) -> float:
        if self.aspect_ratio is not None:
            return self.aspect_ratio
        dims = self.nontrivial_dimensions()
        if len(dims) < 2:
            return 1.0
        return dims[0] / dims[-1]

    def euler_characteristic(self) -> int:
        return self.vertex_count - self.edge_count + self.face_count


def measurements_available(measurements: Optional[GeometryMeasurements]) -> bool:
    return measurements is not None and measurements.available
