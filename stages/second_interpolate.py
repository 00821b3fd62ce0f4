# ---------------------
# 第二次插值（精细插值）模块
# ✅ 第一次插值之后执行：此时每个像素已有四个 GMCY 值，
# 用邻域同色通道的比值修正颜色平衡，抑制伪彩色。可以重复执行多次。

import numpy as np

from stages.cfa import filter_color
from utils.log import log, log_data_range

# 与第一次插值相同的权重表，但中心位置不衰减
NEIGHBOR_SHIFTS = (
    (2, 1, 2),
    (1, 0, 1),
    (2, 1, 2),
)
RATIO_SHIFT = 16
BORDER = 2


def _refine_row(grid, y, cols, out):
    """计算第 y 行 (cols 范围内) 的四个通道，累加进 out"""
    c = filter_color(y, cols)
    center = grid[y, cols, c].astype(np.int64)

    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            shift = NEIGHBOR_SHIFTS[dy + 1][dx + 1]
            sy, sx = y + dy, cols + dx
            sc = filter_color(sy, sx)
            nb = grid[sy, sx].astype(np.int64)
            own = nb[np.arange(len(cols)), sc] << RATIO_SHIFT
            ref = np.maximum(nb[np.arange(len(cols)), c], 1)
            out[cols, sc] += (own // ref * center) >> (RATIO_SHIFT + shift)


def refine_once(grid):
    height, width, _ = grid.shape
    limit = np.iinfo(grid.dtype).max
    cols = np.arange(BORDER, width - BORDER)

    # 双缓冲：buffers[last] 是上一行结果，buffers[this] 是正在计算的行
    buffers = np.zeros((2, width, 4), dtype=np.int64)
    last, this = 0, 1

    for y in range(BORDER, height - BORDER):
        buffers[this] = 0
        _refine_row(grid, y, cols, buffers[this])
        # 当前行算完后才把上一行写回网格，下一行读到的仍是本遍之前的值
        if y > BORDER:
            grid[y - 1, BORDER:width - BORDER] = np.clip(buffers[last, BORDER:width - BORDER], 0, limit)
        last, this = this, last

    # 最后一行 (H-3) 算完后没有下一行来触发写回，保持本遍之前的值
    return grid


def apply(grid, config=None):
    config = config or {}
    if not config.get("enable", True):
        return grid

    passes = int(config.get("passes", 1))
    verbose = config.get("verbose", False)
    for i in range(passes):
        if verbose:
            log(f"第二次插值: 第 {i + 1}/{passes} 遍")
        refine_once(grid)

    if verbose and passes:
        log_data_range(grid[BORDER:-BORDER, BORDER:-BORDER], "第二次插值")
    return grid
