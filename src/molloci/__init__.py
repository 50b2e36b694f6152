from .__version__ import __version__
from .alignment import (
    AlignmentCancelled,
    AlignmentClient,
    AlignmentError,
    AlignmentJob,
    AlignmentResult,
    AlignmentTimeout,
    JobStatus,
    MotifSelection,
    ResidueIdentifier,
    build_pairwise_request,
)
from .assembly import (
    AssemblyGen,
    operator_matches,
    operator_products,
    parse_operator_expression,
    select_assembly_id,
)
from .config import ViewerConfig, ViewerContext
from .expression import (
    AllAtoms,
    AtomGroups,
    Merge,
    Nothing,
    range_to_expression,
    range_to_test,
    target_to_expression,
    targets_to_expression,
)
from .flexible_structure import (
    FlexibleStructure,
    build_flexible_structure,
    build_substructure,
    color_of,
)
from .loci import (
    Loci,
    LociElement,
    loci_to_targets,
    resolve_target,
    target_to_loci,
    to_loci_with_source_units,
)
from .molecule_data import (
    Atom,
    Chain,
    Model,
    Residue,
    SelectionError,
    Structure,
    StructureBuilder,
    SymmetryOperator,
    Unit,
    as_transform,
    summarize_structure,
)
from .motif import (
    Exchange,
    MotifResidue,
    MotifValidationError,
    extract_motif_residues,
    validate_motif,
)
from .presets import (
    AlignmentPreset,
    ChainPreset,
    DensityPreset,
    FeaturePreset,
    GlyGenPreset,
    MotifPreset,
    PresetResult,
    StandardPreset,
    SymmetryPreset,
    ValidationPreset,
    apply_preset,
)
from .selection_expressions import (
    RepresentationKind,
    SelectionExpression,
    create_chain_selection_expression,
    create_glygen_selection_expressions,
    create_selection_expressions,
    format_range_label,
)
from .target import (
    FlexibleSelection,
    Range,
    ResidueColor,
    SeqRange,
    Target,
    join_operators,
    normalize_target,
    to_range,
)

__all__ = [
    "__version__",
    "AlignmentCancelled",
    "AlignmentClient",
    "AlignmentError",
    "AlignmentJob",
    "AlignmentPreset",
    "AlignmentResult",
    "AlignmentTimeout",
    "AllAtoms",
    "AssemblyGen",
    "Atom",
    "AtomGroups",
    "Chain",
    "ChainPreset",
    "DensityPreset",
    "Exchange",
    "FeaturePreset",
    "FlexibleSelection",
    "FlexibleStructure",
    "GlyGenPreset",
    "JobStatus",
    "Loci",
    "LociElement",
    "Merge",
    "Model",
    "MotifPreset",
    "MotifResidue",
    "MotifSelection",
    "MotifValidationError",
    "Nothing",
    "PresetResult",
    "Range",
    "RepresentationKind",
    "Residue",
    "ResidueColor",
    "ResidueIdentifier",
    "SelectionError",
    "SelectionExpression",
    "SeqRange",
    "StandardPreset",
    "Structure",
    "StructureBuilder",
    "SymmetryOperator",
    "SymmetryPreset",
    "Target",
    "Unit",
    "ValidationPreset",
    "ViewerConfig",
    "ViewerContext",
    "apply_preset",
    "as_transform",
    "build_flexible_structure",
    "build_pairwise_request",
    "build_substructure",
    "color_of",
    "create_chain_selection_expression",
    "create_glygen_selection_expressions",
    "create_selection_expressions",
    "extract_motif_residues",
    "format_range_label",
    "join_operators",
    "loci_to_targets",
    "normalize_target",
    "operator_matches",
    "operator_products",
    "parse_operator_expression",
    "range_to_expression",
    "range_to_test",
    "resolve_target",
    "select_assembly_id",
    "summarize_structure",
    "target_to_expression",
    "target_to_loci",
    "targets_to_expression",
    "to_loci_with_source_units",
    "to_range",
    "validate_motif",
]
