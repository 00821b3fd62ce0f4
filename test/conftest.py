# 文件：test/conftest.py
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest

from raw_loader.crw_reader import HEIGHT, ROW_SAMPLES, WIDTH

HEADER = b"II" + b"\x1a\x00\x00\x00" + b"HEAPCCDR" + bytes(12)


def pack_samples(samples):
    """把 (rows, 992) 的 10bit 采样打包成 (rows, 1240) 字节，解包规则的逆运算"""
    p = np.asarray(samples, dtype=np.uint32).reshape(len(samples), -1, 8)
    d = np.zeros(p.shape[:2] + (10,), dtype=np.uint32)
    for half, (a, b, c, e, f) in enumerate(((1, 0, 3, 2, 5), (4, 7, 6, 9, 8))):
        p0, p1, p2, p3 = (p[..., 4 * half + i] for i in range(4))
        d[..., a] = p0 >> 2
        d[..., b] = ((p0 & 3) << 6) | (p1 >> 4)
        d[..., c] = ((p1 & 0xF) << 4) | (p2 >> 6)
        d[..., e] = ((p2 & 0x3F) << 2) | (p3 >> 8)
        d[..., f] = p3 & 0xFF
    return d.reshape(len(samples), -1).astype(np.uint8)


@pytest.fixture
def make_crw(tmp_path):
    """生成合成的 CRW 文件；samples 为 (rows, 960) 的 10bit 采样"""
    def _make(name="test.crw", samples=None, value=512, header=HEADER, rows=HEIGHT, trailer=b""):
        if samples is None:
            samples = np.full((HEIGHT, WIDTH), value, dtype=np.uint16)
        full = np.zeros((len(samples), ROW_SAMPLES), dtype=np.uint16)
        full[:, :WIDTH] = samples
        path = tmp_path / name
        path.write_bytes(header + pack_samples(full)[:rows].tobytes() + trailer)
        return path
    return _make
