import re

from models.user import User

# @First or @First Last, accented letters allowed
MENTION_RE = re.compile(r"@([A-Za-zÀ-ÿ]+(?:\s+[A-Za-zÀ-ÿ]+)?)")


def mentioned_names(content: str) -> list:
    """
    Candidate names for each mention, longest first. "@Marie bonjour"
    yields ["marie bonjour", "marie"] since the second word may not be a
    last name.
    """
    candidates = []
    for match in MENTION_RE.finditer(content or ""):
        words = match.group(1).lower().split()
        options = [" ".join(words)]
        if len(words) > 1:
            options.append(words[0])
        candidates.append(options)
    return candidates


def parse_mentions(content: str) -> list:
    candidates = mentioned_names(content)
    if not candidates:
        return []

    users = User.query.filter_by(is_active=True).order_by(User.id).all()
    # the same name always resolves to the same user
    resolved = {}
    found = []
    for options in candidates:
        for name in options:
            if name not in resolved:
                resolved[name] = next(
                    (u for u in users if name in (u.first_name.lower(), u.full_name.lower())),
                    None,
                )
            match = resolved[name]
            if match:
                if match not in found:
                    found.append(match)
                break
    return found
