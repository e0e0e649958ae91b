"""Journey, dependency and data transformation discovery from exploration results."""

from autoexplore.discovery.dependencies import (
    DependencyEffect,
    FieldDependency,
    StateVariableChange,
    StorageKind,
    VariableDependency,
    VariableRelationship,
    diff_state_variables,
    infer_field_dependencies,
    infer_variable_dependencies,
)
from autoexplore.discovery.flow_analyzer import (
    FlowGraphAnalyzer,
    UserJourney,
    path_overlap,
    priority_label,
)
from autoexplore.discovery.transformations import (
    DataTransformation,
    TransformationKind,
    detect_transformations,
)

__all__ = [
    "DataTransformation",
    "DependencyEffect",
    "FieldDependency",
    "FlowGraphAnalyzer",
    "StateVariableChange",
    "StorageKind",
    "TransformationKind",
    "UserJourney",
    "VariableDependency",
    "VariableRelationship",
    "detect_transformations",
    "diff_state_variables",
    "infer_field_dependencies",
    "infer_variable_dependencies",
    "path_overlap",
    "priority_label",
]
