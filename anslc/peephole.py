import re


REG = r"r\d+(?:b1|q1|l|f)"


def peephole_optimize(lines):
    """Multi-pass peephole optimizer for emitted nisvc-as lines."""
    optimized = lines
    changed = True
    passes = 0
    max_passes = 5  # Prevent infinite loops

    while changed and passes < max_passes:
        changed = False
        prev_len = len(optimized)

        optimized = _eliminate_move_self(optimized)
        optimized = _eliminate_push_pull(optimized)

        if len(optimized) < prev_len:
            changed = True
        passes += 1

    return optimized


def _base(line):
    return line.split(';', 1)[0].rstrip()


def _eliminate_move_self(lines):
    """Remove mov reg,reg (no-op)."""
    optimized = []
    for line in lines:
        m = re.match(rf"\s*mov\s+({REG}),\1$", _base(line))
        if not m:
            optimized.append(line)
    return optimized


def _eliminate_push_pull(lines):
    """Remove push reg immediately followed by pull reg,$d0 (value never left the register)."""
    optimized = []
    i = 0
    while i < len(lines):
        if i + 1 < len(lines):
            m1 = re.match(rf"\s*push\s+({REG})$", _base(lines[i]))
            if m1:
                reg = m1.group(1)
                if re.match(rf"\s*pull\s+{re.escape(reg)},\$d0$", _base(lines[i + 1])):
                    i += 2
                    continue
        optimized.append(lines[i])
        i += 1
    return optimized
