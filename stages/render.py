# ---------------------
# 渲染模块（曝光 + Gamma）
# ✅ ISP 流程最后一步：GMCY 网格 → 8bit RGB。
# 第一遍统计 RGB 直方图，取高光百分位作为白点；第二遍缩放、gamma 校正、裁剪。

import numpy as np

from stages import gmcy_rgb
from utils.log import log

HISTOGRAM_BINS = 512
BIN_SHIFT = 10
# 从最亮的桶往下累加，超过总像素数的 11% 即作为白点
HIGHLIGHT_FRACTION = 0.11
# 362 ≈ 256 * sqrt(2)
EXPOSURE_SCALE = 362


def build_histogram(rgb):
    """RGB 三个通道一起统计，桶号 = int(value) >> 10"""
    idx = np.clip(rgb.astype(np.int64) >> BIN_SHIFT, 0, HISTOGRAM_BINS - 1)
    return np.bincount(idx.ravel(), minlength=HISTOGRAM_BINS)


def pick_ceiling(histogram, total, fraction=HIGHLIGHT_FRACTION):
    """
    Scan the histogram from the top bucket down until the running count
    exceeds ``int(total * fraction)``.

    Returns:
        int: bucket index (at least 1); the white point is ``index << 10``.
    """
    limit = int(total * fraction)
    count = 0
    for val in range(len(histogram) - 1, 0, -1):
        count += int(histogram[val])
        if count > limit:
            return val
    return 1


def apply(grid, config=None):
    config = config or {}
    gamma_value = config.get("gamma", 0.8)
    brightness = config.get("brightness", 1.0)
    fraction = config.get("highlight_fraction", HIGHLIGHT_FRACTION)
    # 用来消除周期性的横纹，默认不做修正
    row_gain = np.asarray(config.get("row_gain", [1.0, 1.0, 1.0, 1.0]), dtype=np.float64)
    coeff = gmcy_rgb.coefficients(config.get("multipliers", (1.0, 1.0, 1.0)))
    verbose = config.get("verbose", False)

    height, width, _ = grid.shape

    # 第一遍：统计
    if verbose:
        log("渲染: First pass RGB...")
    rgb, _ = gmcy_rgb.apply(grid[2:-2, 2:-2], coeff)
    histogram = build_histogram(rgb)
    ceiling = pick_ceiling(histogram, height * width, fraction)
    max_val = float(ceiling << BIN_SHIFT)
    max2 = max_val * max_val
    if verbose:
        log(f"渲染: 白点桶 {ceiling}, max={max_val:.0f}")

    # 第二遍：缩放并输出
    if verbose:
        log("渲染: Second pass RGB...")
    expo = (gamma_value - 1) / 2
    mult = brightness * EXPOSURE_SCALE / max_val
    row_gain = np.power(row_gain, gamma_value)

    rgb, magnitude = gmcy_rgb.apply(grid[1:-1, 1:-1], coeff)
    row_factor = row_gain[np.arange(1, height - 1) & 3][:, None]
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        scale = mult * row_factor * np.power(magnitude / max2, expo)
    # 全黑像素直接输出 0
    scale = np.where(magnitude > 0, scale, 0.0)

    out = np.clip(rgb * scale[..., None], 0, 255)
    return out.astype(np.uint8)
