# pipeline.py
# ---------------------
# CRW → PPM 主流程控制器（Pipeline）
# 逐步执行每个模块；配置了 debug_dir 时每步保存调试图像

import copy
import fnmatch
import glob
import os
import sys

import yaml

from raw_loader.crw_reader import RawDecodeError, read_crw
from stages import first_interpolate, render, second_interpolate
from utils.image_io import output_path, save_image_debug, save_ppm, write_ppm_stream
from utils.log import log

DEFAULT_CONFIG = {
    "raw": {
        "input_dir": None,
        "pattern": "*.crw",
    },
    "first_interpolate": {
        "enable": True,
    },
    "second_interpolate": {
        "enable": True,
        "passes": 1,
    },
    "color": {
        # R/G/B 乘数，用来微调最终色彩平衡
        "multipliers": [1.0, 1.0, 1.0],
    },
    "render": {
        "gamma": 0.8,
        "brightness": 1.0,
        "highlight_fraction": 0.11,
        "row_gain": [1.0, 1.0, 1.0, 1.0],
    },
    "output": {
        "to_stdout": False,
        "output_dir": None,
        "extension": ".ppm",
        "debug_dir": None,
        "verbose": True,
    },
}


def _merge(base, override):
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_file=None, overrides=None):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if config_file:
        with open(config_file, encoding="utf-8") as f:
            _merge(cfg, yaml.safe_load(f) or {})
    return _merge(cfg, overrides)


class ISPPipeline:
    def __init__(self, config=None):
        if config is None or isinstance(config, (str, os.PathLike)):
            config = load_config(config)
        self.config = config

    @property
    def verbose(self):
        return self.config["output"].get("verbose", True)

    def _stage_cfg(self, name):
        stage_cfg = dict(self.config.get(name, {}))
        stage_cfg["verbose"] = self.verbose
        return stage_cfg

    def _debug(self, img, debug_dir, name, scale=True):
        if debug_dir:
            os.makedirs(debug_dir, exist_ok=True)
            save_image_debug(img, os.path.join(debug_dir, name), scale=scale)

    def convert(self, raw_path):
        """读取一个 CRW 文件并返回 (H-2, W-2, 3) 的 uint8 RGB 图像"""
        debug_base = self.config["output"].get("debug_dir")
        debug_dir = None
        if debug_base:
            name = os.path.splitext(os.path.basename(os.fspath(raw_path)))[0]
            debug_dir = os.path.join(debug_base, name)

        grid = read_crw(raw_path, verbose=self.verbose)
        self._debug(grid, debug_dir, "step0_unpack.png")

        # Step 1: 第一次插值，补齐另外三个 GMCY 通道
        if self.verbose:
            log("First interpolation...")
        grid = first_interpolate.apply(grid, self._stage_cfg("first_interpolate"))
        self._debug(grid, debug_dir, "step1_first_interpolate.png")

        # Step 2: 第二次插值，平滑颜色平衡
        if self.verbose:
            log("Second interpolation...")
        grid = second_interpolate.apply(grid, self._stage_cfg("second_interpolate"))
        self._debug(grid, debug_dir, "step2_second_interpolate.png")

        # Step 3: GMCY → RGB，曝光 + gamma
        render_cfg = self._stage_cfg("render")
        render_cfg["multipliers"] = self.config.get("color", {}).get("multipliers", [1.0, 1.0, 1.0])
        rgb = render.apply(grid, render_cfg)
        self._debug(rgb, debug_dir, "step3_render.png", scale=False)
        return rgb

    def process_file(self, raw_path, stream=None):
        out_cfg = self.config["output"]
        rgb = self.convert(raw_path)

        if out_cfg.get("to_stdout", False):
            write_ppm_stream(rgb, stream or sys.stdout.buffer)
            return None

        out_dir = out_cfg.get("output_dir")
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        out_path = output_path(raw_path, out_cfg.get("extension", ".ppm"), out_dir)
        save_ppm(rgb, out_path)
        if self.verbose:
            log(f"✅ {raw_path} → {out_path}")
        return out_path

    def find_inputs(self):
        input_dir = self.config["raw"].get("input_dir")
        if not input_dir:
            return []
        pattern = self.config["raw"].get("pattern", "*.crw")
        # 相机里的文件名常是大写 .CRW，这里不区分大小写
        return sorted(p for p in glob.glob(os.path.join(input_dir, "*"))
                      if fnmatch.fnmatch(os.path.basename(p).lower(), pattern.lower()))

    def run(self, raw_paths=None, stream=None):
        """
        处理一批文件。单个文件失败只跳过该文件，批处理继续。

        Returns:
            list: [(path, exception), ...] 失败的文件
        """
        if not raw_paths:
            raw_paths = self.find_inputs()
            if not raw_paths:
                log("警告: 没有找到任何输入文件。")
                return []

        failures = []
        for raw_path in raw_paths:
            try:
                self.process_file(raw_path, stream)
            except (RawDecodeError, OSError) as e:
                log(f"{raw_path}: {e}")
                failures.append((raw_path, e))
        return failures
