from typing import List

from .models import Range


def compute_ranges(total_questions: int, block_size: int) -> List[Range]:
    """Split ``[0, total_questions)`` into the "all" range plus fixed-size blocks.

    The last block is truncated to fit. An empty deck yields only an empty
    "all" range.
    """
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")

    ranges = [Range(label="all", start=0, end=total_questions - 1)]
    for start in range(0, total_questions, block_size):
        end = min(start + block_size, total_questions) - 1
        ranges.append(Range(label=f"{start + 1}–{end + 1}", start=start, end=end))
    return ranges
