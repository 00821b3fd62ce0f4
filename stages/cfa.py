# ---------------------
# 滤色片阵列（CFA）查询模块
# ✅ 所有阶段共用：给定 (row, col) 返回该像素的 GMCY 滤色片颜色。
#
#       0 1 2 3 4 5
#     0 C Y C Y C Y        返回值
#     1 G M G M G M         0  1  2  3
#     2 C Y C Y C Y         G  M  C  Y
#     3 M G M G M G

from enum import IntEnum

import numpy as np

# 16bit 查找常量，每 2bit 对应一个 (row & 3, col & 1) 组合
FILTER_PATTERN = 0x1E4E


class FilterColor(IntEnum):
    GREEN = 0
    MAGENTA = 1
    CYAN = 2
    YELLOW = 3


def filter_color(row, col):
    """返回滤色片通道号，row/col 可以是 int，也可以是 numpy 整型数组。"""
    return (FILTER_PATTERN >> ((((row << 1) & 6) + (col & 1)) << 1)) & 3


def color_at(row, col):
    return FilterColor(filter_color(row, col))


def pattern_map(height, width):
    """整帧的通道索引图，shape=(height, width)，dtype=uint8"""
    rows, cols = np.indices((height, width), dtype=np.int64)
    return filter_color(rows, cols).astype(np.uint8)
