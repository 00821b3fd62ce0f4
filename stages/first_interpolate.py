# ---------------------
# 第一次插值（粗插值）模块
# ✅ 解包之后立即执行：每个像素只有一个 GMCY 值，用 3x3 邻域线性插值补齐另外三个。
# 边界一圈像素不处理，保持原值。

import numpy as np

from stages.cfa import filter_color
from utils.log import log_data_range

# 3x3 邻域的右移位数：角 >>2，边 >>1，中心 >>16
NEIGHBOR_SHIFTS = (
    (2, 1, 2),
    (1, 16, 1),
    (2, 1, 2),
)


def apply(grid, config=None):
    config = config or {}
    if not config.get("enable", True):
        return grid

    height, width, _ = grid.shape
    # 所有读取都来自处理前的冻结副本，结果与扫描顺序无关
    frozen = grid.astype(np.int64)
    acc = frozen.copy()
    rows, cols = np.indices((height, width))
    inner = acc[1:-1, 1:-1]

    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            shift = NEIGHBOR_SHIFTS[dy + 1][dx + 1]
            sy = slice(1 + dy, height - 1 + dy)
            sx = slice(1 + dx, width - 1 + dx)
            c = filter_color(rows[sy, sx], cols[sy, sx])
            value = np.take_along_axis(frozen[sy, sx], c[..., None], axis=2)
            contrib = np.zeros_like(inner)
            np.put_along_axis(contrib, c[..., None], value >> shift, axis=2)
            inner += contrib

    if config.get("verbose", False):
        log_data_range(acc[1:-1, 1:-1], "第一次插值")

    grid[:]= np.clip(acc, 0, np.iinfo(grid.dtype).max).astype(grid.dtype)
    return grid
