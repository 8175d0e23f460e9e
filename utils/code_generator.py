"""Generate batches of unique codes from placeholder templates.

A template mixes literal characters with placeholder tokens:

    #   one numeric character
    *   one alphanumeric character (0, O and I excluded)
    #+  as many numeric characters as the batch needs
    *+  as many alphanumeric characters as the batch needs

For example ``generate_codes("GIFT-*+-#", 500)`` returns 500 distinct codes
such as ``"GIFT-K7Q-4"``.
"""
import dataclasses
import logging
import math
import re
import secrets
from collections import Counter
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from utils.errors import AttemptsExhaustedError, CapacityExceededError, InvalidOptionsError

logger = logging.getLogger(__name__)


NUMERIC_CHARS = "0123456789"

# Character set excludes the look-alikes 0, O and I; 1 is kept, giving 33 characters
ALPHANUMERIC_CHARS = "123456789ABCDEFGHJKLMNPQRSTUVWXYZ"

DEFAULT_MAX_COLLISIONS = 10000

PatternLike = Union[str, "re.Pattern"]


class PlaceholderKind(Enum):
    """The four placeholder classes a template can contain."""

    FIXED_NUMERIC = "numeric"
    FIXED_ALPHANUMERIC = "alphanumeric"
    EXPANDABLE_NUMERIC = "numeric_more"
    EXPANDABLE_ALPHANUMERIC = "alphanumeric_more"

    @property
    def expandable(self) -> bool:
        return self in (PlaceholderKind.EXPANDABLE_NUMERIC, PlaceholderKind.EXPANDABLE_ALPHANUMERIC)

    @property
    def numeric(self) -> bool:
        return self in (PlaceholderKind.FIXED_NUMERIC, PlaceholderKind.EXPANDABLE_NUMERIC)


# Expandable kinds come first so "#+" is never read as "#" followed by "+"
MATCH_ORDER = (
    PlaceholderKind.EXPANDABLE_ALPHANUMERIC,
    PlaceholderKind.EXPANDABLE_NUMERIC,
    PlaceholderKind.FIXED_ALPHANUMERIC,
    PlaceholderKind.FIXED_NUMERIC,
)


def no_existing_codes(template: str) -> List[str]:
    """Default loader: no code is taken yet."""
    return []


@dataclasses.dataclass(frozen=True)
class GeneratorOptions:
    """
    Settings for one generation call.

    Instances are immutable; use ``dataclasses.replace`` (or keyword overrides
    to ``generate_codes``) to derive a modified copy.

    Attributes:
        numeric_chars: Alphabet for ``#`` and ``#+``
        alphanumeric_chars: Alphabet for ``*`` and ``*+``
        numeric_pattern: Regex (source text or compiled, no flags) matching a
            fixed numeric placeholder
        alphanumeric_pattern: Regex matching a fixed alphanumeric placeholder
        numeric_more_pattern: Regex matching an expandable numeric placeholder
        alphanumeric_more_pattern: Regex matching an expandable alphanumeric placeholder
        sparsity: Finite headroom multiplier, values below 1 are raised to 1
        max_collisions: Consecutive rejected candidates tolerated before giving
            up (None never gives up)
        existing_codes_loader: Called with the template, returns codes that are
            already taken
    """

    numeric_chars: str = NUMERIC_CHARS
    alphanumeric_chars: str = ALPHANUMERIC_CHARS
    numeric_pattern: PatternLike = r"#(?!\+)"
    alphanumeric_pattern: PatternLike = r"\*(?!\+)"
    numeric_more_pattern: PatternLike = r"#\+"
    alphanumeric_more_pattern: PatternLike = r"\*\+"
    sparsity: float = 1
    max_collisions: Optional[int] = DEFAULT_MAX_COLLISIONS
    existing_codes_loader: Optional[Callable[[str], Iterable[str]]] = no_existing_codes
    _combined: "re.Pattern" = dataclasses.field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.numeric_chars:
            raise InvalidOptionsError("numeric_chars must not be empty")
        if not self.alphanumeric_chars:
            raise InvalidOptionsError("alphanumeric_chars must not be empty")
        if self.max_collisions is not None and self.max_collisions < 1:
            raise InvalidOptionsError("max_collisions must be at least 1")
        if not math.isfinite(self.sparsity):
            raise InvalidOptionsError(f"sparsity must be a finite number, got {self.sparsity}")
        for kind in PlaceholderKind:
            object.__setattr__(self, f"{kind.value}_pattern", self._pattern_source(kind))
        try:
            combined = re.compile("|".join(
                f"(?P<{kind.value}>{self.pattern_for(kind)})" for kind in MATCH_ORDER
            ))
        except re.error as e:
            raise InvalidOptionsError(f"Placeholder patterns cannot be combined: {e}") from e
        object.__setattr__(self, "_combined", combined)
        if self.sparsity < 1:
            object.__setattr__(self, "sparsity", 1)

    def _pattern_source(self, kind: PlaceholderKind) -> str:
        """Validate one placeholder pattern and return it as regex source text."""
        pattern = self.pattern_for(kind)
        if isinstance(pattern, re.Pattern):
            # Flags would be lost once the source is joined with the other patterns
            if pattern.flags & ~re.UNICODE:
                raise InvalidOptionsError(
                    f"The {kind.value} pattern {pattern.pattern!r} must use inline flags, e.g. (?i:...)"
                )
            pattern = pattern.pattern
        if not isinstance(pattern, str):
            raise InvalidOptionsError(
                f"The {kind.value} pattern must be a string or compiled regex, got {type(pattern).__name__}"
            )
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise InvalidOptionsError(f"Invalid {kind.value} pattern {pattern!r}: {e}") from e
        if compiled.match("") is not None:
            raise InvalidOptionsError(f"The {kind.value} pattern {pattern!r} matches an empty string")
        return pattern

    def pattern_for(self, kind: PlaceholderKind) -> PatternLike:
        return getattr(self, f"{kind.value}_pattern")

    def chars_for(self, kind: PlaceholderKind) -> str:
        return self.numeric_chars if kind.numeric else self.alphanumeric_chars

    def combined_pattern(self) -> "re.Pattern":
        """Single alternation of all four placeholder patterns, one named group each."""
        return self._combined


DEFAULT_OPTIONS = GeneratorOptions()

OptionsLike = Union[GeneratorOptions, Mapping[str, object], None]


def merge_options(options: OptionsLike = None, **overrides) -> GeneratorOptions:
    """
    Merge caller overrides into a new options value.

    Args:
        options: Base options, a mapping of field overrides, or None for defaults
        **overrides: Field values that win over ``options``

    Returns:
        A new GeneratorOptions (DEFAULT_OPTIONS is never modified)
    """
    if options is None:
        options = DEFAULT_OPTIONS
    elif isinstance(options, Mapping):
        overrides = {**options, **overrides}
        options = DEFAULT_OPTIONS

    if overrides:
        return dataclasses.replace(options, **overrides)
    return options


@dataclasses.dataclass(frozen=True)
class Placeholder:
    """One placeholder occurrence in a template."""

    kind: PlaceholderKind
    token: str
    position: int


Segment = Union[str, Placeholder]


@dataclasses.dataclass(frozen=True)
class TemplateLayout:
    """A template split into literal text and placeholder occurrences, in order."""

    template: str
    segments: Tuple[Segment, ...]

    @property
    def placeholders(self) -> List[Placeholder]:
        return [s for s in self.segments if isinstance(s, Placeholder)]

    @property
    def expandable(self) -> List[Placeholder]:
        return [p for p in self.placeholders if p.kind.expandable]

    @property
    def has_expandable(self) -> bool:
        return bool(self.expandable)

    @property
    def counts(self) -> Dict[PlaceholderKind, int]:
        counter = Counter(p.kind for p in self.placeholders)
        return {kind: counter.get(kind, 0) for kind in PlaceholderKind}


def analyze_template(template: str, options: GeneratorOptions = DEFAULT_OPTIONS) -> TemplateLayout:
    """
    Split a template into literal text and classified placeholders.

    Args:
        template: Code template, e.g. "ABC-#+"
        options: Supplies the placeholder patterns

    Returns:
        TemplateLayout with segments in template order
    """
    segments: List[Segment] = []
    cursor = 0
    for match in options.combined_pattern().finditer(template):
        if match.start() == match.end():
            continue
        if match.start() > cursor:
            segments.append(template[cursor:match.start()])
        kind = next(k for k in MATCH_ORDER if match.group(k.value) is not None)
        segments.append(Placeholder(kind, match.group(), match.start()))
        cursor = match.end()
    if cursor < len(template):
        segments.append(template[cursor:])
    return TemplateLayout(template, tuple(segments))


def count_fixed_combinations(layout: TemplateLayout, options: GeneratorOptions) -> int:
    """
    Count the distinct values the fixed placeholders of a template can take.

    A template without fixed placeholders counts as 0.
    """
    counts = layout.counts
    numeric = count_permutations(counts[PlaceholderKind.FIXED_NUMERIC], options.numeric_chars)
    alphanumeric = count_permutations(counts[PlaceholderKind.FIXED_ALPHANUMERIC], options.alphanumeric_chars)
    if numeric > 0 and alphanumeric > 0:
        return numeric * alphanumeric
    return numeric + alphanumeric


def count_permutations(occurrences: int, allowed_chars: str) -> int:
    return len(allowed_chars) ** occurrences if occurrences else 0


def check_capacity(
    layout: TemplateLayout,
    requested: int,
    existing: int,
    options: GeneratorOptions
) -> int:
    """
    Make sure a fixed-width template has room for the requested codes.

    Args:
        layout: Analyzed template without expandable placeholders
        requested: Number of codes asked for
        existing: Number of codes already taken
        options: Supplies alphabets and sparsity

    Returns:
        Number of combinations still available after the existing codes

    Raises:
        CapacityExceededError: If the requested codes (times sparsity) do not fit
    """
    sparsity = options.sparsity
    possible = count_fixed_combinations(layout, options)
    available = possible - math.ceil(existing * sparsity)
    if available < math.ceil(requested * sparsity):
        maximum = math.floor(possible / sparsity + 0.5)
        logger.warning(
            "Template %r cannot hold %d codes (maximum %d, existing %d, sparsity %g)",
            layout.template, requested, maximum, existing, sparsity
        )
        raise CapacityExceededError(requested, maximum, existing, sparsity)
    return available


def needed_chars(how_many: int, allowed_chars: str) -> int:
    """Smallest width (at least 1) whose combinations over allowed_chars reach how_many."""
    base = len(allowed_chars)
    width = 1
    if base < 2:
        return width
    capacity = base
    while capacity < how_many:
        capacity *= base
        width += 1
    return width


def plan_widths(
    layout: TemplateLayout,
    requested_sparse: int,
    existing_sparse: int,
    options: GeneratorOptions
) -> List[int]:
    """
    Work out how many characters each expandable placeholder gets.

    The combinations the fixed placeholders cannot supply are split evenly
    across the expandable occurrences; each then gets enough characters from
    its own alphabet to cover its share.

    Args:
        layout: Analyzed template with at least one expandable placeholder
        requested_sparse: Requested quantity multiplied by sparsity, rounded up
        existing_sparse: Existing code count multiplied by sparsity, rounded up
        options: Supplies the alphabets

    Returns:
        One width per expandable occurrence, in template order
    """
    expandable = layout.expandable
    non_repeating = count_fixed_combinations(layout, options)
    deficit = max(1, requested_sparse - non_repeating + existing_sparse)
    per_occurrence = -(-deficit // len(expandable))
    widths = [needed_chars(per_occurrence, options.chars_for(p.kind)) for p in expandable]
    logger.debug(
        "Template %r: deficit %d over %d expandable placeholder(s), widths %s",
        layout.template, deficit, len(expandable), widths
    )
    return widths


def load_existing_codes(template: str, options: GeneratorOptions = DEFAULT_OPTIONS) -> Set[str]:
    """
    Snapshot the codes already taken for a template.

    Codes are compared as plain strings; they are not checked against the
    template shape.
    """
    loader = options.existing_codes_loader
    if loader is None:
        return set()
    return set(loader(template) or ())


def random_chars(allowed_chars: str, count: int) -> str:
    """
    Generate a random string of length count from a list of allowed characters.

    Args:
        allowed_chars: Alphabet to draw from (with replacement)
        count: Number of characters

    Returns:
        A string of exactly count characters, each from allowed_chars
    """
    if not allowed_chars:
        raise InvalidOptionsError("Cannot draw random characters from an empty alphabet")
    return "".join(secrets.choice(allowed_chars) for _ in range(count))


def render_code(layout: TemplateLayout, widths: Sequence[int], options: GeneratorOptions) -> str:
    """Fill every placeholder of the layout with fresh random characters."""
    remaining = iter(widths)
    parts = []
    for segment in layout.segments:
        if isinstance(segment, str):
            parts.append(segment)
        elif segment.kind.expandable:
            parts.append(random_chars(options.chars_for(segment.kind), next(remaining)))
        else:
            parts.append(random_chars(options.chars_for(segment.kind), 1))
    return "".join(parts)


def emit_codes(
    layout: TemplateLayout,
    widths: Sequence[int],
    quantity: int,
    taken: Iterable[str],
    options: GeneratorOptions
) -> List[str]:
    """
    Draw candidates until quantity new codes are found.

    Args:
        layout: Analyzed template
        widths: Width per expandable occurrence, in template order
        quantity: Number of codes to return
        taken: Codes that must not be produced (left untouched)
        options: Supplies alphabets and the collision limit

    Returns:
        List of distinct codes, none of them in taken

    Raises:
        AttemptsExhaustedError: If max_collisions candidates in a row were taken
    """
    seen = set(taken)
    generated = []
    collisions = 0
    while len(generated) < quantity:
        code = render_code(layout, widths, options)
        if code in seen:
            collisions += 1
            if options.max_collisions is not None and collisions > options.max_collisions:
                raise AttemptsExhaustedError(len(generated), quantity, collisions)
            continue
        collisions = 0
        seen.add(code)
        generated.append(code)
    return generated


def generate_codes(
    template: str,
    quantity: Optional[int] = 1,
    options: OptionsLike = None,
    **overrides
) -> List[str]:
    """
    Generate quantity unique codes following a template.

    Args:
        template: Code template with #, *, #+ and *+ placeholders
        quantity: Number of codes to generate (None means 1)
        options: GeneratorOptions, a mapping of option overrides, or None
        **overrides: Individual option fields, e.g. sparsity=2

    Returns:
        List of quantity distinct codes, none of them returned by the loader

    Raises:
        InvalidOptionsError: If quantity is below 1 or the options are unusable
        CapacityExceededError: If a fixed-width template is too small
        AttemptsExhaustedError: If candidates keep colliding
    """
    options = merge_options(options, **overrides)
    if quantity is None:
        quantity = 1
    if quantity < 1:
        raise InvalidOptionsError(f"quantity must be at least 1, got {quantity}")

    existing = load_existing_codes(template, options)
    layout = analyze_template(template, options)

    if layout.has_expandable:
        widths = plan_widths(
            layout,
            math.ceil(quantity * options.sparsity),
            math.ceil(len(existing) * options.sparsity),
            options
        )
    else:
        check_capacity(layout, quantity, len(existing), options)
        widths = []

    codes = emit_codes(layout, widths, quantity, existing, options)
    logger.info(
        "Generated %d code(s) for template %r (%d existing, sparsity %g)",
        len(codes), template, len(existing), options.sparsity
    )
    return codes
