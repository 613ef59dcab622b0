# Message text helpers


def normalize_text(content):
    # Strip surrounding whitespace and blank edge lines, keep inner line breaks
    if not content or not isinstance(content, str):
        return ''
    lines = content.strip().split('\n')
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return '\n'.join(line.rstrip() for line in lines)


def snippet(content, limit=140):
    # First line of a message, shortened for previews
    if not content:
        return ''
    return content.strip().split('\n')[0][:limit]
