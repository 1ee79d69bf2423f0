def added_lines(patch_text: str) -> set[int]:
    """Return the new-file line numbers added by a unified diff patch.

    Context and removed lines are not included. A malformed ``@@`` header
    stops line tracking until the next valid header.
    """
    added: set[int] = set()
    file_line: int | None = None

    for line in patch_text.splitlines():
        if line.startswith("@@"):
            try:
                new_file_range = line.split("+")[1].split(" ")[0]
                file_line = int(new_file_range.split(",")[0])
            except (IndexError, ValueError):
                file_line = None
            continue

        if file_line is None:
            continue
        if line.startswith("+") and not line.startswith("+++"):
            added.add(file_line)
            file_line += 1
        elif line.startswith("-") and not line.startswith("---"):
            pass  # removed line, new-file counter stays put
        elif line.startswith("\\"):
            pass  # "\ No newline at end of file"
        else:
            file_line += 1

    return added
