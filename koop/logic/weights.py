from .constants import MULTIPLE_TOLERANCE


def calculate_weight(value: float, unit_size: float, threshold: float) -> float:
    """
    Scores how close a quantity sits to a packaging multiple (0..1).

    Below unit_size * threshold only the distance up to the next unit counts;
    above it the nearer of the two neighbouring multiples counts.
    Purely descriptive, it does not steer the distributors.
    """
    remainder = value % unit_size
    if abs(remainder - unit_size) < MULTIPLE_TOLERANCE * unit_size:
        remainder = 0.0

    if value < unit_size * threshold:
        distance = unit_size - remainder
    else:
        distance = min(remainder, unit_size - remainder)

    return 1 - distance / unit_size
