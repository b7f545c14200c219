from pathlib import Path

START = "<!-- WR-WEEKLY:START -->"
END = "<!-- WR-WEEKLY:END -->"


def splice(text, new_block, start=START, end=END) -> str:
    """Replace the lines between the start/end marker lines with new_block.

    Marker lines are kept. Text without markers is returned unchanged.
    """
    out = []
    inblock = False
    for line in text.splitlines(keepends=True):
        marker = line.rstrip("\r\n")
        if marker == start:
            out.append(line)
            out.append(new_block if new_block.endswith("\n") or not new_block else new_block + "\n")
            inblock = True
            continue
        if marker == end:
            inblock = False
            out.append(line)
            continue
        if not inblock:
            out.append(line)
    return "".join(out)


def update_readme(readme_path, new_block, start=START, end=END):
    path = Path(readme_path)
    text = path.read_text(encoding="utf-8")
    path.write_text(splice(text, new_block, start, end), encoding="utf-8")
