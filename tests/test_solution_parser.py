from snapsolve.parsers.solution import (
    DEFAULT_SPACE_COMPLEXITY,
    DEFAULT_THOUGHTS,
    DEFAULT_TIME_COMPLEXITY,
    normalize_complexity,
    parse_solution,
)

RESPONSE = """Code:
```python
def two_sum(nums, target):
    seen = {}
    for i, n in enumerate(nums):
        # Time complexity: O(n^3) is what the brute force would cost
        if target - n in seen:
            return [seen[target - n], i]
        seen[n] = i
```

Your Thoughts:
- Use a hashmap to remember values
- One pass is enough

Time complexity: O(n) because we visit each element once. Lookups are constant time.
Space complexity: O(n) because the map can hold every element.
"""

def test_full_response():
    r = parse_solution(RESPONSE)
    assert r.code.startswith("def two_sum(nums, target):")
    assert r.code.endswith("seen[n] = i")
    assert r.thoughts == ["Use a hashmap to remember values", "One pass is enough"]
    assert r.time_complexity == "O(n) because we visit each element once. Lookups are constant time."
    assert r.space_complexity == "O(n) because the map can hold every element."

def test_numbered_thoughts():
    r = parse_solution("Reasoning:\n1. First idea\n2. Second idea\n")
    assert r.thoughts == ["First idea", "Second idea"]

def test_thoughts_without_bullets_use_lines():
    text = (
        "Approach:\nSort the array first.\nThen scan with two pointers.\n\n"
        "Time complexity: O(n log n) - sorting dominates.\n"
        "Space complexity: O(1)\n"
    )
    r = parse_solution(text)
    assert r.thoughts == ["Sort the array first.", "Then scan with two pointers."]
    assert r.time_complexity == "O(n log n) - sorting dominates."
    assert r.space_complexity.startswith("O(1) - ")

def test_markdown_emphasis_on_headings():
    text = (
        "**Time complexity:** O(n^2) because nested loops compare every pair.\n"
        "**Space complexity:** O(1) constant\n"
    )
    r = parse_solution(text)
    assert r.time_complexity == "O(n^2) because nested loops compare every pair."
    assert r.space_complexity == "O(1) - constant"

def test_missing_notation_gets_prefix():
    r = parse_solution("Time complexity: linear in the input size\n")
    assert r.time_complexity == "O(n) - linear in the input size"
    assert r.space_complexity == DEFAULT_SPACE_COMPLEXITY

def test_defaults_when_nothing_matches():
    r = parse_solution("print('hi')")
    assert r.code == "print('hi')"
    assert r.thoughts == DEFAULT_THOUGHTS
    assert r.time_complexity == DEFAULT_TIME_COMPLEXITY
    assert r.space_complexity == DEFAULT_SPACE_COMPLEXITY

def test_normalize_complexity_splices_clause():
    assert normalize_complexity("O(log n)", "Time") == "O(log n) - Time complexity of the approach above."
    assert normalize_complexity("O(1) - nothing extra", "Space") == "O(1) - nothing extra"

def test_single_line_fence_keeps_all_code():
    assert parse_solution("```def f(): return 1```\n\nThoughts:\n- trivial").code == "def f(): return 1"
    assert parse_solution("```cpp\nint x = 1;\n```").code == "int x = 1;"
