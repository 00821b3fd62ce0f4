# ---------------------
# GMCY → RGB 颜色转换模块
# ✅ 渲染阶段逐像素调用。
#
# 下表是四种 CCD 像素对三原色的响应（0-100）：
#
#     RGB--->   red    green    blue
#    GMCY-v
#    green       11      86       8
#    magenta     50      29      51
#    cyan        11      92      75
#    yellow      81      98       8
#
# 转换矩阵由这张表标定得到。

import numpy as np

GMCY_TO_RGB = np.array([
    [-2.400719, 3.539540, -2.515721, 3.421035],   # red from GMCY
    [4.013642, -1.710916, 0.690795, 0.417247],    # green from GMCY
    [-2.345669, 3.385090, 3.521597, -2.249256],   # blue from GMCY
], dtype=np.float32)


def coefficients(multipliers=(1.0, 1.0, 1.0)):
    """按 R/G/B 乘数缩放矩阵的每一行，用来微调最终的色彩平衡"""
    mul = np.asarray(multipliers, dtype=np.float32).reshape(3, 1)
    return GMCY_TO_RGB * mul


def get_rgb(gmcy, coeff=None):
    """单个 GMCY 四元组 → (r, g, b, magnitude)，magnitude 为 r²+g²+b²"""
    if coeff is None:
        coeff = GMCY_TO_RGB
    rgb = coeff @ np.asarray(gmcy, dtype=np.float32)
    r, g, b = (float(v) for v in rgb)
    return r, g, b, r * r + g * g + b * b


def apply(gmcy, coeff=None):
    """
    Convert a (..., 4) GMCY array to RGB.

    Returns:
        tuple: (rgb (..., 3) float32, magnitude (...) float32)
    """
    if coeff is None:
        coeff = GMCY_TO_RGB
    rgb = gmcy.astype(np.float32) @ coeff.T
    magnitude = np.sum(rgb * rgb, axis=-1)
    return rgb, magnitude
