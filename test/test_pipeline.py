import io
from pathlib import Path

import numpy as np
import pytest
import yaml

import main
from pipeline import ISPPipeline, load_config
from raw_loader.crw_reader import HEIGHT, WIDTH, FormatError, TruncatedInputError
from utils.image_io import output_path

OUT_W, OUT_H = WIDTH - 2, HEIGHT - 2
PIXEL_BYTES = OUT_W * OUT_H * 3


def quiet_pipeline(**output):
    return ISPPipeline(load_config(overrides={"output": {"verbose": False, **output}}))


def split_ppm(data):
    header_len = len(data) - PIXEL_BYTES
    header = data[:header_len]
    pixels = np.frombuffer(data[header_len:], dtype=np.uint8).reshape(OUT_H, OUT_W, 3)
    return header, pixels


def test_end_to_end_constant_frame(make_crw):
    raw = make_crw(value=512)
    out = quiet_pipeline().process_file(raw)

    assert out == str(raw.with_suffix(".ppm"))
    header, pixels = split_ppm(open(out, "rb").read())
    assert header.startswith(b"P6")
    assert header.split() == [b"P6", str(OUT_W).encode(), str(OUT_H).encode(), b"255"]
    assert pixels.min() >= 0 and pixels.max() <= 255
    assert pixels.max() > 0


def test_convert_random_frame(make_crw):
    rng = np.random.default_rng(7)
    raw = make_crw(samples=rng.integers(0, 1024, size=(HEIGHT, WIDTH), dtype=np.uint16))
    rgb = quiet_pipeline().convert(raw)
    assert rgb.shape == (OUT_H, OUT_W, 3)
    assert rgb.dtype == np.uint8


def test_stdout_stream(make_crw):
    stream = io.BytesIO()
    isp = quiet_pipeline(to_stdout=True)
    assert isp.run([make_crw("a.crw"), make_crw("b.crw", value=100)], stream=stream) == []

    data = stream.getvalue()
    single = len(data) // 2
    assert data.startswith(b"P6\n")
    assert data[single:].startswith(b"P6\n")
    assert len(data) - 2 * PIXEL_BYTES < 64


def test_bad_header_writes_nothing(make_crw, tmp_path):
    raw = make_crw(header=b"XX" + bytes(24))
    failures = quiet_pipeline().run([raw])

    assert len(failures) == 1
    assert failures[0][0] == raw
    assert isinstance(failures[0][1], FormatError)
    assert list(tmp_path.glob("*.ppm")) == []
    assert list(tmp_path.glob(".*")) == []


def test_truncated_input_writes_nothing(make_crw, tmp_path):
    raw = make_crw(rows=HEIGHT // 2)
    failures = quiet_pipeline().run([raw])

    assert len(failures) == 1
    assert isinstance(failures[0][1], TruncatedInputError)
    assert not raw.with_suffix(".ppm").exists()


def test_batch_continues_after_failure(make_crw, tmp_path, capsys):
    bad = make_crw("bad.crw", header=b"II" + bytes(24))
    missing = tmp_path / "missing.crw"
    good = make_crw("good.crw")

    failures = quiet_pipeline().run([bad, missing, good])

    assert [path for path, _ in failures] == [bad, missing]
    assert (tmp_path / "good.ppm").exists()
    err = capsys.readouterr().err
    assert "bad.crw" in err and "not a Canon PowerShot A5 file" in err
    assert "missing.crw" in err


def test_output_dir_and_debug_dir(make_crw, tmp_path):
    raw = make_crw("img.crw")
    out_dir = tmp_path / "out"
    debug_dir = tmp_path / "debug"
    isp = quiet_pipeline(output_dir=str(out_dir), debug_dir=str(debug_dir))

    assert isp.run([raw]) == []
    assert (out_dir / "img.ppm").exists()
    steps = sorted(p.name for p in (debug_dir / "img").iterdir())
    assert steps == [
        "step0_unpack.png",
        "step1_first_interpolate.png",
        "step2_second_interpolate.png",
        "step3_render.png",
    ]


def test_input_dir_batch(make_crw, tmp_path):
    make_crw("one.crw")
    make_crw("two.crw", value=50)
    isp = ISPPipeline(load_config(overrides={
        "raw": {"input_dir": str(tmp_path)},
        "output": {"verbose": False},
    }))
    assert isp.find_inputs() == [str(tmp_path / "one.crw"), str(tmp_path / "two.crw")]
    assert isp.run() == []
    assert (tmp_path / "one.ppm").exists() and (tmp_path / "two.ppm").exists()


@pytest.mark.parametrize("name, expected", [
    ("photo.crw", "photo.ppm"),
    ("photo", "photo.ppm"),
    ("dir.v2/photo.CRW", "dir.v2/photo.ppm"),
    ("a.b.crw", "a.b.ppm"),
])
def test_output_path(name, expected):
    assert output_path(name) == expected


def test_output_path_redirect():
    assert output_path("in/photo.crw", ".ppm", "out") == "out/photo.ppm"


def test_load_config_merges_yaml(tmp_path):
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(yaml.safe_dump({"render": {"gamma": 0.6}, "color": {"multipliers": [1.1, 1.0, 0.9]}}))

    cfg = load_config(cfg_file, {"render": {"brightness": 2.0}})
    assert cfg["render"]["gamma"] == 0.6
    assert cfg["render"]["brightness"] == 2.0
    assert cfg["render"]["highlight_fraction"] == 0.11
    assert cfg["color"]["multipliers"] == [1.1, 1.0, 0.9]
    assert cfg["second_interpolate"]["passes"] == 1


def test_repo_config_matches_defaults():
    cfg = load_config(Path(__file__).resolve().parent.parent / "config.yaml")
    assert cfg["render"]["gamma"] == 0.8
    assert cfg["render"]["brightness"] == 1.0


def test_cli(make_crw, tmp_path):
    raw = make_crw("cli.crw")
    assert main.main(["-q", "-g", "0.6", "-b", "1.5", "--passes", "2", str(raw)]) == 0
    assert (tmp_path / "cli.ppm").exists()


def test_cli_reports_failure(make_crw, capsys):
    bad = make_crw("bad.crw", header=bytes(26))
    assert main.main(["-q", str(bad)]) == 1
    assert "bad.crw" in capsys.readouterr().err


def test_cli_without_files_prints_usage(capsys):
    assert main.main([]) == 1
    assert "usage" in capsys.readouterr().err


def test_cli_overrides():
    args = main.build_parser().parse_args(["-c", "-g", "1.2", "-b", "0.5", "x.crw"])
    overrides = main.overrides_from_args(args)
    assert overrides["render"] == {"gamma": 1.2, "brightness": 0.5}
    assert overrides["output"] == {"to_stdout": True}
    assert args.files == ["x.crw"]


def test_failed_file_leaves_no_debug_dir(make_crw, tmp_path):
    bad = make_crw("broken.crw", header=bytes(26))
    short = make_crw("short.crw", rows=10)
    debug_dir = tmp_path / "debug"
    isp = quiet_pipeline(debug_dir=str(debug_dir))

    assert len(isp.run([bad, short])) == 2
    assert not (debug_dir / "broken").exists()
    assert not (debug_dir / "short").exists()


def test_input_dir_matches_upper_case_extension(make_crw, tmp_path):
    make_crw("IMG_0001.CRW")
    make_crw("img_0002.crw")
    (tmp_path / "notes.txt").write_text("x")
    isp = ISPPipeline(load_config(overrides={
        "raw": {"input_dir": str(tmp_path)},
        "output": {"verbose": False},
    }))
    assert isp.find_inputs() == [str(tmp_path / "IMG_0001.CRW"), str(tmp_path / "img_0002.crw")]


def test_cli_stdout_flag_defaults_off():
    args = main.build_parser().parse_args(["x.crw"])
    assert args.stdout is False
    assert main.overrides_from_args(args)["output"] == {}
