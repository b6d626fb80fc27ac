"""Rule catalog: category/severity lookup tables and type-aware rule membership."""

from __future__ import annotations

from qualityiq.core.violation import ViolationCategory as Cat
from qualityiq.core.violation import ViolationSeverity as Sev

__all__ = [
    "LINT_RULE_TABLE",
    "LINT_DEFAULT",
    "COMPILER_CODE_TABLE",
    "COMPILER_DEFAULT_CATEGORY",
    "TYPE_AWARE_LINT_RULES",
    "categorize_lint_rule",
    "categorize_compiler_code",
    "fix_suggestion_for",
]

# Rules absent from the table land in LINT_DEFAULT.
LINT_RULE_TABLE: dict[str, tuple[Cat, Sev]] = {
    "no-console": (Cat.CODE_QUALITY, Sev.WARN),
    "no-debugger": (Cat.CODE_QUALITY, Sev.ERROR),
    "prefer-const": (Cat.STYLE, Sev.WARN),
    "no-var": (Cat.STYLE, Sev.WARN),
    "no-floating-promises": (Cat.PERFORMANCE, Sev.ERROR),
    "@typescript-eslint/no-floating-promises": (Cat.PERFORMANCE, Sev.ERROR),
    "no-restricted-imports": (Cat.ARCHITECTURE, Sev.WARN),
    "no-unused-vars": (Cat.UNUSED_VARS, Sev.WARN),
    "@typescript-eslint/no-unused-vars": (Cat.UNUSED_VARS, Sev.WARN),
    "@typescript-eslint/prefer-nullish-coalescing": (Cat.MODERNIZATION, Sev.INFO),
    "@typescript-eslint/prefer-optional-chain": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/prefer-node-protocol": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/prefer-module": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/prefer-array-flat-map": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/prefer-string-starts-ends-with": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/prefer-number-properties": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/prefer-spread": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/no-array-instanceof": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/explicit-length-check": (Cat.MODERNIZATION, Sev.INFO),
    "unicorn/no-useless-undefined": (Cat.MODERNIZATION, Sev.INFO),
    "@typescript-eslint/explicit-function-return-type": (Cat.LEGACY_TYPE_RULE, Sev.INFO),
    "@typescript-eslint/explicit-module-boundary-types": (Cat.LEGACY_TYPE_RULE, Sev.INFO),
    "@typescript-eslint/no-explicit-any": (Cat.LEGACY_TYPE_RULE, Sev.INFO),
    "@typescript-eslint/no-non-null-assertion": (Cat.NULL_SAFETY, Sev.WARN),
    "@typescript-eslint/ban-ts-comment": (Cat.CODE_QUALITY, Sev.WARN),
    "@typescript-eslint/no-deprecated": (Cat.MAINTAINABILITY, Sev.WARN),
    "complexity": (Cat.COMPLEXITY, Sev.WARN),
    "max-depth": (Cat.COMPLEXITY, Sev.WARN),
    "no-eval": (Cat.SECURITY, Sev.ERROR),
    "no-implied-eval": (Cat.SECURITY, Sev.ERROR),
    # eslint reports fatal parse failures without a rule id
    "parse-error": (Cat.SYNTAX_ERROR, Sev.ERROR),
}

LINT_DEFAULT: tuple[Cat, Sev] = (Cat.OTHER_ESLINT, Sev.INFO)

# Compiler codes keyed without the "TS" prefix. Unknown codes fall back to
# COMPILER_DEFAULT_CATEGORY and keep the compiler's own severity.
COMPILER_CODE_TABLE: dict[str, Cat] = {
    # module resolution
    "2307": Cat.IMPORT_ERROR,
    "2305": Cat.IMPORT_ERROR,
    "2306": Cat.IMPORT_ERROR,
    "1016": Cat.IMPORT_ERROR,
    "1259": Cat.IMPORT_ERROR,
    "1192": Cat.IMPORT_ERROR,
    "2614": Cat.IMPORT_ERROR,
    # unresolved names and members
    "2304": Cat.UNKNOWN_REFERENCE,
    "2339": Cat.UNKNOWN_REFERENCE,
    "2552": Cat.UNKNOWN_REFERENCE,
    "2551": Cat.UNKNOWN_REFERENCE,
    # assignability
    "2322": Cat.TYPE_MISMATCH,
    "2345": Cat.TYPE_MISMATCH,
    "2741": Cat.TYPE_MISMATCH,
    "2769": Cat.TYPE_MISMATCH,
    "2352": Cat.CAST,
    # implicit any and annotations
    "7006": Cat.ANNOTATION,
    "7005": Cat.ANNOTATION,
    "7031": Cat.ANNOTATION,
    "7053": Cat.RECORD_TYPE,
    "7010": Cat.RETURN_TYPE,
    "2366": Cat.RETURN_TYPE,
    # nullability
    "2531": Cat.NULL_SAFETY,
    "2532": Cat.NULL_SAFETY,
    "18047": Cat.NULL_SAFETY,
    "18048": Cat.NULL_SAFETY,
    # generics
    "2344": Cat.GENERIC_CONSTRAINT,
    "2571": Cat.GENERIC_UNKNOWN,
    "18046": Cat.GENERIC_UNKNOWN,
    # unused declarations under noUnused*
    "6133": Cat.UNUSED_VARS,
    "6192": Cat.UNUSED_VARS,
    "6196": Cat.UNUSED_VARS,
    # syntax
    "1005": Cat.SYNTAX_ERROR,
    "1109": Cat.SYNTAX_ERROR,
    "1128": Cat.SYNTAX_ERROR,
    "1003": Cat.SYNTAX_ERROR,
    # configuration
    "5023": Cat.SETUP_ISSUE,
    "5083": Cat.SETUP_ISSUE,
    "18003": Cat.SETUP_ISSUE,
}

COMPILER_DEFAULT_CATEGORY: Cat = Cat.OTHER

# Lint rules that need full type information. Reporting them from the linter
# duplicates the compiler's job.
TYPE_AWARE_LINT_RULES: frozenset[str] = frozenset({
    "@typescript-eslint/explicit-function-return-type",
    "@typescript-eslint/explicit-module-boundary-types",
    "@typescript-eslint/no-explicit-any",
    "@typescript-eslint/no-implicit-any-catch",
    "@typescript-eslint/strict-boolean-expressions",
    "@typescript-eslint/prefer-includes",
    "@typescript-eslint/prefer-string-starts-ends-with",
    "@typescript-eslint/prefer-readonly",
    "@typescript-eslint/prefer-readonly-parameter-types",
    "@typescript-eslint/require-array-sort-compare",
    "@typescript-eslint/restrict-plus-operands",
    "@typescript-eslint/restrict-template-expressions",
    "@typescript-eslint/unbound-method",
    "@typescript-eslint/prefer-reduce-type-parameter",
    "@typescript-eslint/prefer-return-this-type",
    "@typescript-eslint/promise-function-async",
    "@typescript-eslint/require-await",
    "@typescript-eslint/return-await",
    "@typescript-eslint/no-base-to-string",
    "@typescript-eslint/no-confusing-void-expression",
    "@typescript-eslint/no-meaningless-void-operator",
    "@typescript-eslint/no-unnecessary-boolean-literal-compare",
    "@typescript-eslint/no-unnecessary-condition",
    "@typescript-eslint/no-unnecessary-qualifier",
    "@typescript-eslint/no-unnecessary-type-arguments",
    "@typescript-eslint/no-unnecessary-type-assertion",
    "@typescript-eslint/no-unnecessary-type-constraint",
    "@typescript-eslint/non-nullable-type-assertion-style",
    "@typescript-eslint/prefer-for-of",
    "@typescript-eslint/prefer-function-type",
    "@typescript-eslint/prefer-literal-enum-member",
    "@typescript-eslint/prefer-namespace-keyword",
    "@typescript-eslint/prefer-nullish-coalescing",
    "@typescript-eslint/prefer-optional-chain",
})

_FIX_SUGGESTIONS: dict[Cat, str] = {
    Cat.UNUSED_VARS: "Remove the unused binding or prefix it with an underscore.",
    Cat.UNUSED_EXPORT: "Remove the export or the declaration if nothing imports it.",
    Cat.CODE_QUALITY: "Remove debugging statements before committing.",
    Cat.STYLE: "Use const for bindings that are never reassigned.",
    Cat.MODERNIZATION: "Apply the suggested modern syntax (optional chaining, nullish coalescing).",
    Cat.LEGACY_TYPE_RULE: "Disable this rule in the linter and rely on strict compiler settings.",
    Cat.IMPORT_ERROR: "Check the module path and that the dependency is installed.",
    Cat.UNKNOWN_REFERENCE: "Declare or import the referenced name.",
    Cat.TYPE_MISMATCH: "Align the value with the declared type or widen the declaration.",
    Cat.CAST: "Replace the assertion with a type guard.",
    Cat.ANNOTATION: "Add an explicit type annotation.",
    Cat.NULL_SAFETY: "Guard against null/undefined before dereferencing.",
    Cat.SYNTAX_ERROR: "Fix the syntax error; the file cannot be analyzed until it parses.",
    Cat.SETUP_ISSUE: "Check the analyzer installation and project configuration.",
}


def categorize_lint_rule(rule: str | None) -> tuple[Cat, Sev]:
    """Look up the category and severity of a lint rule."""
    if not rule:
        return LINT_DEFAULT
    return LINT_RULE_TABLE.get(rule, LINT_DEFAULT)


def categorize_compiler_code(code: str | None) -> Cat:
    """Look up the category of a compiler diagnostic code such as ``TS2307``."""
    if not code:
        return COMPILER_DEFAULT_CATEGORY
    numeric = code[2:] if code.upper().startswith("TS") else code
    return COMPILER_CODE_TABLE.get(numeric, COMPILER_DEFAULT_CATEGORY)


def fix_suggestion_for(category: Cat) -> str | None:
    return _FIX_SUGGESTIONS.get(category)
