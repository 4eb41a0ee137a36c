"""Interactive choice among install candidates."""

from collections.abc import Callable, Sequence

# Maps a list of option labels to the chosen 0-based index
Selector = Callable[[Sequence[str]], int]


def prompt_for_choice(
    options: Sequence[str],
    input_fn: Callable[[str], str] | None = None,
    print_fn: Callable[[str], None] | None = None,
    title: str = "Please choose a package to download:",
) -> int:
    """Print an ordinal-indexed menu and block until a valid number is entered.

    There is no timeout; invalid input re-prompts indefinitely.

    Args:
        options: Option labels, shown 1-based.
        input_fn: Line reader (defaults to ``input``).
        print_fn: Line writer (defaults to ``print``).
        title: Heading printed above the menu.

    Returns:
        0-based index of the chosen option.

    Raises:
        ValueError: If *options* is empty.
        EOFError: If the input stream closes before a valid choice.
    """
    if not options:
        raise ValueError("No options to choose from")
    input_fn = input_fn or input
    print_fn = print_fn or print

    print_fn(title)
    for i, label in enumerate(options, start=1):
        print_fn(f"[{i}] {label}")

    while True:
        raw = input_fn("> ")
        try:
            choice = int(raw.strip())
        except ValueError:
            choice = 0
        if 1 <= choice <= len(options):
            return choice - 1
        print_fn("Invalid choice. Please enter a number from the list.")
