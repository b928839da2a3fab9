# core_game.py (headless, vectorized)
import numpy as np

cols, rows = 12, 20
ROWS, COLS = rows, cols

# Color ids match the renderer's palette index.
TETROMINO_COLORS = {
    'T': 1,
    'O': 2,
    'L': 3,
    'J': 4,
    'I': 5,
    'S': 6,
    'Z': 7,
}

tetrominoes = {
    'T': np.array([[1,1,1],
                   [0,1,0]], dtype=np.int8),
    'O': np.array([[2,2],
                   [2,2]], dtype=np.int8),
    'L': np.array([[3,3,3],
                   [3,0,0]], dtype=np.int8),
    'J': np.array([[4,4,4],
                   [0,0,4]], dtype=np.int8),
    'I': np.array([[5,5,5,5]], dtype=np.int8),
    'S': np.array([[0,6,6],
                   [6,6,0]], dtype=np.int8),
    'Z': np.array([[7,7,0],
                   [0,7,7]], dtype=np.int8),
}


def create_grid(width: int = cols, height: int = rows) -> np.ndarray:
    return np.zeros((height, width), dtype=np.int8)


def rotate(matrix, times: int = 1) -> np.ndarray:
    """
    Rotate a rectangular grid clockwise by transposing then reversing each row.
    Always returns a new array; four rotations give back the input.
    """
    rotated = np.array(matrix, dtype=np.int8)
    for _ in range(times % 4):
        rotated = rotated.T[:, ::-1]
    return np.ascontiguousarray(rotated)


def rotations(matrix) -> list:
    return [rotate(matrix, r) for r in range(4)]


def check_collision(grid: np.ndarray, shape: np.ndarray, x: int, y: int) -> bool:
    """True if any occupied cell of shape at (x, y) is off the board or over a filled cell."""
    h, w = grid.shape
    ys, xs = np.nonzero(shape)
    ys = ys + y
    xs = xs + x
    if np.any((xs < 0) | (xs >= w) | (ys < 0) | (ys >= h)):
        return True
    return bool(np.any(grid[ys, xs] != 0))


def lock_piece(grid: np.ndarray, shape: np.ndarray, x: int, y: int) -> np.ndarray:
    """Write the piece's cells into grid in place; cells outside the board are skipped."""
    h, w = grid.shape
    ys, xs = np.nonzero(shape)
    values = shape[ys, xs]
    ys = ys + y
    xs = xs + x
    inside = (xs >= 0) & (xs < w) & (ys >= 0) & (ys < h)
    grid[ys[inside], xs[inside]] = values[inside]
    return grid


def clear_lines(grid: np.ndarray) -> int:
    """
    Remove every full row, shifting the rest down and refilling the top with empty rows.
    Works in place and returns the number of rows removed.
    """
    full_rows = np.all(grid != 0, axis=1)
    lines_cleared = int(np.count_nonzero(full_rows))
    if lines_cleared > 0:
        kept = grid[~full_rows].copy()
        grid[:lines_cleared] = 0
        grid[lines_cleared:] = kept
    return lines_cleared


def sweep_score(lines_cleared: int) -> int:
    # 10, 20, 40, ... per line within one sweep, plus a flat bonus for four at once
    score = sum(10 * 2 ** k for k in range(lines_cleared))
    if lines_cleared == 4:
        score += 800
    return score


def column_heights(grid: np.ndarray) -> np.ndarray:
    h, _ = grid.shape
    occ = grid != 0
    first_occ = np.where(occ.any(axis=0), np.argmax(occ, axis=0), h)
    return h - first_occ


def get_drop_y(grid: np.ndarray, shape: np.ndarray, x: int) -> int:
    """
    Lowest row reachable by letting shape fall from row 0 at column x.
    Returns -1 if it already collides at row 0.
    """
    h, _ = grid.shape
    y = 0
    while y < h and not check_collision(grid, shape, x, y):
        y += 1
    return y - 1


def is_game_over(grid: np.ndarray) -> bool:
    return bool(np.any(grid[0] != 0))


def spawn_x(shape: np.ndarray, width: int = cols) -> int:
    return width // 2 - shape.shape[1] // 2


def render(grid: np.ndarray) -> str:
    return "\n".join("".join("#" if cell else "." for cell in row) for row in grid)
