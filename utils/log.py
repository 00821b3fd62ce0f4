# log.py
# 进度输出统一走 stderr，stdout 留给 -c 模式的 PPM 数据流
import sys

import numpy as np


def log(msg):
    print(msg, file=sys.stderr)


def log_data_range(data, step_name):
    """监控数据范围，帮助调试"""
    data = np.asarray(data)
    log(f"→ {step_name}: 范围[{data.min():.1f}, {data.max():.1f}], "
        f"均值{data.mean():.1f}")
