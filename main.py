# 文件：main.py
# ---------------------
# 主程序入口：解析命令行，加载 config.yaml，逐个转换 CRW 文件
import argparse
import sys

from pipeline import ISPPipeline, load_config

VERSION = "0.87"


def build_parser():
    parser = argparse.ArgumentParser(
        prog="a5isp",
        description=f"Canon PowerShot A5 Converter v{VERSION}",
        usage="%(prog)s [options] file1.crw file2.crw ...")
    parser.add_argument("files", nargs="*", help="CRW files to convert")
    parser.add_argument("-c", "--stdout", action="store_true",
                        help="Write PPM to standard output")
    parser.add_argument("-g", "--gamma", type=float, help="Set gamma value (0.800 by default)")
    parser.add_argument("-b", "--brightness", type=float, help="Set brightness (1.000 by default)")
    parser.add_argument("-o", "--output-dir", help="Write PPM files into this directory")
    parser.add_argument("--passes", type=int, help="Number of second interpolation passes")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--debug-dir", help="Save intermediate images for each file here")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only report failures")
    return parser


def overrides_from_args(args):
    overrides = {"render": {}, "output": {}, "second_interpolate": {}}
    if args.gamma is not None:
        overrides["render"]["gamma"] = args.gamma
    if args.brightness is not None:
        overrides["render"]["brightness"] = args.brightness
    if args.stdout:
        overrides["output"]["to_stdout"] = True
    if args.output_dir:
        overrides["output"]["output_dir"] = args.output_dir
    if args.debug_dir:
        overrides["output"]["debug_dir"] = args.debug_dir
    if args.quiet:
        overrides["output"]["verbose"] = False
    if args.passes is not None:
        overrides["second_interpolate"]["passes"] = args.passes
    return overrides


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config, overrides_from_args(args))
    if not args.files and not config["raw"].get("input_dir"):
        parser.print_usage(sys.stderr)
        return 1

    isp = ISPPipeline(config)
    failures = isp.run(args.files, stream=sys.stdout.buffer)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
