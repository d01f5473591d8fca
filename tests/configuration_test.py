import logging

import pytest

import ramsesmap
from ramsesmap import configuration


def test_config_defaults():
    config = ramsesmap.config
    assert config['number_of_threads'] > 0
    assert config['projection']['chunk-size'] > 0
    assert config['projection']['default-mode'] == 'standard'
    assert config['projection']['default-weighting'] == 'mass'
    assert 'default-length-unit' in config['units']


def test_overrides(tmp_path, monkeypatch):
    (tmp_path / "config.ini").write_text("[projection]\nchunk-size = 128\n\n[general]\nnumber_of_threads = 3\n")
    monkeypatch.chdir(tmp_path)
    parser = configuration._get_config_parser_with_defaults()
    configuration._add_overrides_to_config_parser(parser)
    config = configuration._get_basic_config_from_parser(parser)
    assert config['projection']['chunk-size'] == 128
    assert config['number_of_threads'] == 3
    assert config['projection']['default-mode'] == 'standard'


def test_run_options_defaults():
    opts = ramsesmap.RunOptions()
    assert opts.max_threads == ramsesmap.config['number_of_threads']
    assert opts.log_level == (logging.INFO if ramsesmap.config['verbose'] else logging.DEBUG)


def test_run_options():
    opts = ramsesmap.RunOptions(verbose=True, show_progress=True, max_threads=2)
    assert opts.log_level == logging.INFO
    assert ramsesmap.RunOptions.resolve(opts) is opts
    assert isinstance(ramsesmap.RunOptions.resolve(None), ramsesmap.RunOptions)
    with pytest.raises(TypeError):
        ramsesmap.RunOptions.resolve({'verbose': True})
    with pytest.raises(AttributeError):
        opts.colour = 'red'


def test_verbose_logging(caplog, uniform_gas):
    opts = ramsesmap.RunOptions(verbose=True)
    with caplog.at_level(logging.INFO, logger='ramsesmap'):
        ramsesmap.subregion(uniform_gas, 'sphere', center=['bc'], radius=0.2, options=opts)
    assert any('records selected' in r.getMessage() for r in caplog.records)


def test_set_logging_level():
    logger = logging.getLogger('ramsesmap')
    old = logger.level
    try:
        ramsesmap.set_logging_level(logging.DEBUG)
        assert logger.level == logging.DEBUG
    finally:
        logger.setLevel(old)
