# ---------------------
# 读取 PowerShot A5 CRW 图像（10bit, packed 格式）
# 返回 (H, W, 4) 的 GMCY 网格，供后续插值处理
# 每个像素只有自己滤色片对应的通道有值，其余三个通道为 0

import os

import numpy as np

from stages.cfa import pattern_map
from utils.log import log

HEIGHT = 776
WIDTH = 960

HEADER_SIZE = 26
ORDER_MARK = b"II"
HEAP_MARK = b"HEAPCCDR"
HEAP_MARK_OFFSET = 6

# 每行 992 个 10bit 像素，打包成 1240 字节；只有前 960 个有效
ROW_BYTES = 1240
ROW_SAMPLES = 992
SAMPLE_MASK = 0x3FF
PRECISION_SHIFT = 4


class RawDecodeError(Exception):
    """CRW 解码失败的基类"""


class FormatError(RawDecodeError):
    """文件头签名不匹配：不是 PowerShot A5 文件"""


class TruncatedInputError(RawDecodeError, IOError):
    """数据行不足 776 条完整记录"""


def check_header(header, fname="<input>"):
    if len(header) < HEADER_SIZE:
        raise FormatError(f"{fname} is not a Canon PowerShot A5 file (header is {len(header)} bytes).")
    marker = header[HEAP_MARK_OFFSET:HEAP_MARK_OFFSET + len(HEAP_MARK)]
    if header[:len(ORDER_MARK)] != ORDER_MARK or marker != HEAP_MARK:
        raise FormatError(f"{fname} is not a Canon PowerShot A5 file.")


def unpack_rows(records):
    """
    解包 10bit 数据：每 10 字节存 8 个像素（两组 5字节→4像素）。

    Args:
        records (np.ndarray): uint8, shape (rows, 1240)

    Returns:
        np.ndarray: uint16, shape (rows, 992)，已截到 10bit
    """
    rows = records.shape[0]
    dp = records.reshape(rows, -1, 10).astype(np.uint32)
    pix = np.empty(dp.shape[:2] + (8,), dtype=np.uint32)

    pix[..., 0] = (dp[..., 1] << 2) + (dp[..., 0] >> 6)
    pix[..., 1] = (dp[..., 0] << 4) + (dp[..., 3] >> 4)
    pix[..., 2] = (dp[..., 3] << 6) + (dp[..., 2] >> 2)
    pix[..., 3] = (dp[..., 2] << 8) + (dp[..., 5])
    pix[..., 4] = (dp[..., 4] << 2) + (dp[..., 7] >> 6)
    pix[..., 5] = (dp[..., 7] << 4) + (dp[..., 6] >> 4)
    pix[..., 6] = (dp[..., 6] << 6) + (dp[..., 9] >> 2)
    pix[..., 7] = (dp[..., 9] << 8) + (dp[..., 8])

    return (pix.reshape(rows, ROW_SAMPLES) & SAMPLE_MASK).astype(np.uint16)


def build_grid(samples):
    """把 (H, W) 的单通道采样放进 (H, W, 4) 网格中对应的 GMCY 通道"""
    height, width = samples.shape
    grid = np.zeros((height, width, 4), dtype=np.uint16)
    color = pattern_map(height, width)
    rows, cols = np.indices((height, width))
    # 左移 4 位，给后续插值留出精度
    grid[rows, cols, color] = samples.astype(np.uint16) << PRECISION_SHIFT
    return grid


def read_crw(path, verbose=True):
    fname = os.fspath(path)
    with open(fname, "rb") as f:
        check_header(f.read(HEADER_SIZE), fname)

        if verbose:
            log(f"CRW: Unpacking {fname}...")

        expected = HEIGHT * ROW_BYTES
        data = np.frombuffer(f.read(expected), dtype=np.uint8)
        if data.size < expected:
            raise TruncatedInputError(
                f"{fname}: truncated raw data, got {data.size // ROW_BYTES} of {HEIGHT} rows "
                f"({data.size} of {expected} bytes)")
        if verbose and f.read(1):
            log(f"CRW: 忽略 {fname} 末尾多余的数据")

    records = data.reshape(HEIGHT, ROW_BYTES)
    samples = unpack_rows(records)[:, :WIDTH]
    return build_grid(samples)
