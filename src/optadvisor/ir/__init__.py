"""
Intermediate representation consumed by the analyses.

- types: closed Type model and the standard numeric/array hierarchy
- nodes: statements, operands, functions and the statement visitor
- method_table: read-only method signatures supplied by the frontend
- validation: structural checks performed once at ingestion
"""

from optadvisor.ir.method_table import EMPTY_METHOD_TABLE, MethodSignature, MethodTable
from optadvisor.ir.nodes import (
    UNRESOLVED,
    ArgRef,
    Call,
    ConditionalBranch,
    Function,
    FunctionSignature,
    GlobalRead,
    GlobalStore,
    Literal,
    Return,
    SSARef,
    Statement,
    StatementVisitor,
    UnconditionalJump,
    arg,
    make_function,
    ref,
)
from optadvisor.ir.types import (
    ANY_TYPE,
    ARRAY_TYPE,
    BOOL_TYPE,
    FLOAT32_TYPE,
    FLOAT64_TYPE,
    FLOATING_TYPE,
    INT32_TYPE,
    INT64_TYPE,
    INTEGER_TYPE,
    NOTHING_TYPE,
    NUMBER_TYPE,
    REAL_TYPE,
    STRING_TYPE,
    UINT64_TYPE,
    AbstractType,
    ConcreteType,
    ContainerType,
    TopType,
    Type,
    UnionType,
    is_subtype,
    matrix_of,
    type_of_value,
    types_intersect,
    vector_of,
)
from optadvisor.ir.validation import IRValidator, is_well_formed, validate_function

__all__ = [
    # Types
    "Type",
    "ConcreteType",
    "AbstractType",
    "UnionType",
    "TopType",
    "ContainerType",
    "is_subtype",
    "types_intersect",
    "type_of_value",
    "vector_of",
    "matrix_of",
    "ANY_TYPE",
    "NUMBER_TYPE",
    "REAL_TYPE",
    "INTEGER_TYPE",
    "FLOATING_TYPE",
    "ARRAY_TYPE",
    "INT32_TYPE",
    "INT64_TYPE",
    "UINT64_TYPE",
    "FLOAT32_TYPE",
    "FLOAT64_TYPE",
    "BOOL_TYPE",
    "STRING_TYPE",
    "NOTHING_TYPE",
    # Statements
    "Statement",
    "Literal",
    "GlobalRead",
    "GlobalStore",
    "Call",
    "ConditionalBranch",
    "UnconditionalJump",
    "Return",
    "SSARef",
    "ArgRef",
    "UNRESOLVED",
    "ref",
    "arg",
    "StatementVisitor",
    # Functions
    "Function",
    "FunctionSignature",
    "make_function",
    # Method table
    "MethodSignature",
    "MethodTable",
    "EMPTY_METHOD_TABLE",
    # Validation
    "IRValidator",
    "validate_function",
    "is_well_formed",
]
