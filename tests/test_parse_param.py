import pytest

from codec_bench import CodecConfigError, CustomCodec, create_image_codec
from codec_bench.custom_codec import routes_to_quality_parser


def parse_all(params):
    codec = CustomCodec()
    for param in params:
        codec.parse_param(param)
    return codec


def test_positional_params():
    codec = parse_all(["jxl", "/bin/cjxl", "/bin/djxl", "-q", "90"])
    assert codec.extension == "jxl"
    assert codec.compress_command == "/bin/cjxl"
    assert codec.decompress_command == "/bin/djxl"
    assert codec.compress_args == ["-q", "90"]
    assert codec.description == "jxl:cjxl:q:90"


def test_description_normalization():
    codec = parse_all(["bin", "enc", "dec", "--effort=7", "-x", "plain", "-", "--"])
    assert codec.description == "bin:enc:effort=7:x:plain:-:--"
    assert codec.compress_args == ["--effort=7", "-x", "plain", "-", "--"]


def test_first_param_resets_description():
    codec = CustomCodec()
    codec.parse_parameters("jxl:/bin/cjxl:/bin/djxl")
    assert codec.description == "jxl:cjxl"


def test_dash_d_is_dual_routed():
    codec = parse_all(["jxl", "cjxl", "djxl", "-d5"])
    assert codec.compress_args == ["-d5"]
    assert codec.butteraugli_target == 5.0
    assert codec.description == "jxl:cjxl:d5"


def test_other_flags_only_reach_the_command():
    codec = parse_all(["jxl", "cjxl", "djxl", "-q5"])
    assert codec.compress_args == ["-q5"]
    assert codec.q_target == 100.0


def test_routing_rule():
    assert routes_to_quality_parser("-d1.5")
    assert not routes_to_quality_parser("-d")
    assert not routes_to_quality_parser("--d5")
    assert not routes_to_quality_parser("d5")


def test_invalid_dual_routed_value_fails():
    with pytest.raises(CodecConfigError):
        parse_all(["jxl", "cjxl", "djxl", "-dx"])


def test_factory_parses_description():
    codec = create_image_codec("custom:jxl:/bin/cjxl:/bin/djxl:-q:90:-d2")
    assert isinstance(codec, CustomCodec)
    assert codec.description == "jxl:cjxl:q:90:d2"
    assert codec.butteraugli_target == 2.0


@pytest.mark.parametrize(
    "param,attr,value",
    [("q80", "q_target", 80.0), ("d1.5", "butteraugli_target", 1.5), ("r0.5", "bitrate_target", 0.5)],
)
def test_shared_quality_params(param, attr, value):
    codec = create_image_codec("png")
    codec.parse_param(param)
    assert getattr(codec, attr) == value


@pytest.mark.parametrize("param", ["x1", "q", "qhigh", ""])
def test_unrecognized_shared_param(param):
    codec = create_image_codec("png")
    with pytest.raises(CodecConfigError):
        codec.parse_param(param)
