# image_io.py
import os
import tempfile

import cv2
import numpy as np

PPM_EXT = ".ppm"


def save_image_debug(img, path, scale=False):
    img_float = img.astype(np.float32)
    # GMCY 网格按通道求和，方便直接看
    if img_float.ndim == 3 and img_float.shape[2] == 4:
        img_float = img_float.sum(axis=2)

    if scale:
        max_val = img_float.max()

        if max_val > 0:
            img_scaled = img_float / max_val * 255.0
            # 防止uint8溢出
            img_processed = np.clip(img_scaled, 0, 255).astype(np.uint8)
        else:
            img_processed = np.zeros_like(img_float, dtype=np.uint8)
    else:
        img_processed = np.clip(img_float, 0, 255).astype(np.uint8)

    if img_processed.ndim == 3:
        img_processed = cv2.cvtColor(img_processed, cv2.COLOR_RGB2BGR)
    if not cv2.imwrite(os.fspath(path), img_processed):
        raise OSError(f"无法写入调试图像: {path}")


def output_path(input_path, ext=PPM_EXT, output_dir=None):
    """把输入文件名的扩展名换成 ext；没有扩展名就直接追加"""
    root, _ = os.path.splitext(os.fspath(input_path))
    if output_dir is not None:
        root = os.path.join(os.fspath(output_dir), os.path.basename(root))
    return root + ext


def encode_ppm(rgb):
    """RGB uint8 图像 → 二进制 PPM (P6) 字节串"""
    rgb = np.ascontiguousarray(rgb, dtype=np.uint8)
    ok, buf = cv2.imencode(PPM_EXT, cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR), [cv2.IMWRITE_PXM_BINARY, 1])
    if not ok:
        raise OSError("PPM 编码失败")
    return buf.tobytes()


def save_ppm(rgb, path):
    """先写临时文件再原子替换，失败时不会留下半截的输出文件"""
    data = encode_ppm(rgb)
    path = os.fspath(path)
    fd, tmp = tempfile.mkstemp(prefix=".", suffix=PPM_EXT, dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise
    return path


def write_ppm_stream(rgb, stream):
    stream.write(encode_ppm(rgb))
    stream.flush()
