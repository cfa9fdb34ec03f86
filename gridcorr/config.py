# Copyright (c) 2003-2024 by Mike Jarvis
#
# GridCorr is free software: redistribution and use in source and binary forms,
# with or without modification, are permitted provided that the following
# conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice, this
#    list of conditions, and the disclaimer given in the accompanying LICENSE
#    file.
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions, and the disclaimer given in the documentation
#    and/or other materials provided with the distribution.

"""
.. module:: config
"""

import sys
import numpy as np
import logging


def parse_variable(config, v):
    """Parse a configuration variable from a string that should look like 'key = value'
    and write that value to config[key].

    :param config:  The configuration dict to wich to write the key,value pair
    :param v:       A string of the form 'key = value'
    """
    if '=' not in v:
        raise ValueError('Improper variable specification: %s.  Use syntax: key = value.'%v)
    key, value = v.split('=',1)
    key = key.strip()
    # Cut off any trailing comment
    if '#' in value:
        value = value.split('#')[0]
    value = value.strip()
    if len(value) == 0:
        raise ValueError('No value given for %s'%key)
    if value[0] in ['{','[','(']:
        if value[-1] not in ['}',']',')']:
            raise ValueError('List symbol %s not properly matched'%value[0])
        values = value[1:-1].split(',')
        values = [ vv.strip() for vv in values ]
    else:
        values = value.split() # on whitespace
    if len(values) == 1:
        config[key] = values[0]
    else:
        config[key] = values


def parse_bool(value):
    """Parse a value as a boolean.

    Valid string values for True are: 'true', 'yes', 't', 'y'
    Valid string values for False are: 'false', 'no', 'f', 'n', 'none'
    Capitalization is ignored.

    If value is a number, it is converted to a bool in the usual way.

    :param value:   The value to parse.

    :returns:       The value converted to a bool.
    """
    if isinstance(value,str):
        if value.strip().upper() in [ 'TRUE', 'YES', 'T', 'Y' ]:
            return True
        elif value.strip().upper() in [ 'FALSE', 'NO', 'F', 'N', 'NONE' ]:
            return False
        else:
            try:
                return bool(int(value))
            except ValueError:
                raise ValueError("Unable to parse %s as a bool."%value)
    elif isinstance(value,(bool, np.bool_)):
        return bool(value)
    elif isinstance(value,(int, np.integer)):
        return bool(value)
    else:
        raise ValueError("Unable to parse %s as a bool."%value)


def read_config(file_name, file_type='auto'):
    """Read a configuration dict from a file.

    :param file_name:   The file name from which the configuration dict should be read.
    :param file_type:   The type of config file.  Options are 'auto', 'yaml', 'json', 'params'.
                        (default: 'auto', which tries to determine the type from the extension)

    :returns:           A config dict built from the configuration file.
    """
    if file_type == 'auto':
        if file_name.endswith('.yaml') or file_name.endswith('.yml'):
            file_type = 'yaml'
        elif file_name.endswith('.json'):
            file_type = 'json'
        elif file_name.endswith('.params'):
            file_type = 'params'
        else:
            raise ValueError("Unable to determine the type of config file from the extension")
    if file_type == 'yaml':
        return _read_yaml_file(file_name)
    elif file_type == 'json':
        return _read_json_file(file_name)
    elif file_type == 'params':
        return _read_params_file(file_name)
    else:
        raise ValueError("Invalid file_type %s"%file_type)

def _read_yaml_file(file_name):
    import yaml
    with open(file_name) as fin:
        config = yaml.safe_load(fin.read())
    return config

def _read_json_file(file_name):
    import json
    with open(file_name) as fin:
        config = json.load(fin)
    return config

def _read_params_file(file_name):
    config = dict()
    with open(file_name) as fin:
        for v in fin:
            v = v.strip()
            if len(v) == 0 or v[0] == '#':
                pass
            elif v[0] == '+':
                include_file_name = v[1:]
                config1 = read_config(include_file_name)
                config.update(config1)
            else:
                parse_variable(config,v)
    return config


def setup_logger(verbose, log_file=None, name=None):
    """Parse the integer verbosity level from the command line args into a logging_level string

    :param verbose:     An integer indicating what verbosity level to use.
    :param log_file:    If given, a file name to which to write the logging output.
                        If omitted or None, then output to stdout.
    :param name:        The name of the logger to use. (default: 'gridcorr', plus the log_file
                        name if one is given)

    :returns:           The logging.Logger object to use.
    """
    logging_levels = { 0: logging.CRITICAL,
                       1: logging.WARNING,
                       2: logging.INFO,
                       3: logging.DEBUG }
    logging_level = logging_levels[int(verbose)]

    # Setup logging to go to sys.stdout or (if requested) to an output file
    if name is None:
        name = 'gridcorr'
    if log_file is not None:
        name = name + '_' + log_file
    logger = logging.getLogger(name)

    if len(logger.handlers) == 0:  # only add handler once!
        if log_file is None:
            handle = logging.StreamHandler(stream=sys.stdout)
        else:
            handle = logging.FileHandler(log_file)
        formatter = logging.Formatter('%(message)s')  # Simple text output
        handle.setFormatter(formatter)
        logger.addHandler(handle)
    logger.setLevel(logging_level)
    return logger


def parse(value, value_type, name):
    """Parse the input value as the given type.

    :param value:       The value to parse.
    :param value_type:  The type expected for this.
    :param name:        The name of this value. Only used for error reporting.

    :returns: value
    """
    try:
        if value_type is bool:
            return parse_bool(value)
        elif value is None:
            return None
        else:
            return value_type(value)
    except (TypeError, ValueError):
        raise ValueError("Could not parse {}={} as type {}".format(name, value, value_type))


def check_config(config, params):
    """Check (and update) a config dict to conform to the given parameter rules.
    The params dict has an entry for each valid config parameter whose value is a tuple
    with the following items:

    - type
    - can be a list?
    - default value
    - valid values
    - description (Multiple entries here are allowed for longer strings)

    The file smucorrelation.py has the list of parameters for `SMuCorrelation`.

    :param config:  The config dict to check.
    :param params:  A dict of valid parameters with information about each one.

    :returns:       The updated config dict.
    """
    config = config.copy()
    for key in list(config.keys()):
        # Check that this is a valid key
        if key not in params:
            raise TypeError("Invalid parameter %s."%key)

        value_type, may_be_list, default_value, valid_values = params[key][:4]

        # Get the value
        if may_be_list and isinstance(config[key], (list, tuple, np.ndarray)):
            value = [parse(v, value_type, key) for v in config[key] ]
        else:
            value = parse(config[key], value_type, key)

        # If limited allowed value, check that this is one of them.
        if valid_values is not None and value is not None:
            if value not in valid_values:
                raise ValueError("Parameter %s has invalid value %s.  Valid values are %s."%(
                    key, config[key], str(valid_values)))

        # Write it back to the dict with the right type
        config[key] = value

    # Write the defaults for other parameters to simplify the syntax of getting the values
    for key in params:
        if key in config:
            continue
        value_type, may_be_list, default_value, valid_values = params[key][:4]
        if default_value is not None:
            config[key] = default_value

    return config


def convert(value, value_type, key):
    """Convert the given value to the given type.

    :param value:       The input value to be converted.  Usually a string.
    :param value_type:  The type to convert to.
    :param key:         The key for this value.  Only used for error reporting.

    :returns:           The converted value.
    """
    if value_type is bool:
        return parse_bool(value)
    elif value is None:
        return None
    else:
        return parse(value, value_type, key)

def get(config, key, value_type=str, default=None):
    """A helper function to get a key from config converting to a particular type

    :param config:      The configuration dict from which to get the key value.
    :param key:         Which key to get from config.
    :param value_type:  Which type should the value be converted to. (default: str)
    :param default:     What value should be used if the key is not in the config dict.
                        (default: None)

    :returns:           The specified value, converted as needed.
    """
    if key in config and config[key] is not None:
        value = config[key]
        return convert(value, value_type, key)
    elif default is not None:
        return convert(default,value_type,key)
    else:
        return default

def get_list(config, key, value_type=float, default=None):
    """A helper function to get a key from config that is allowed to be a list.

    Scalars are returned as a one-element list, so the caller can always iterate.

    :param config:      The configuration dict from which to get the key value.
    :param key:         Which key to get from config.
    :param value_type:  Which type the items should be converted to. (default: float)
    :param default:     What value should be used if the key is not in the config dict.
                        (default: None)

    :returns:           A list of converted values, or None.
    """
    values = config.get(key, None)
    if values is None:
        values = default
    if values is None:
        return None
    if not isinstance(values, (list, tuple, np.ndarray)):
        values = [values]
    return [convert(v, value_type, key) for v in values]

def merge_config(config, kwargs, valid_params):
    """Merge in the values from kwargs into config.

    If either of these is None, then the other one is returned.
    If they are both dicts, then the values in kwargs take precedence over ones in config
    if there are any keys that are in both.  Also, the kwargs dict will be modified in this case.

    :param config:          The root config (will not be modified)
    :param kwargs:          A second dict with more or updated values
    :param valid_params:    A dict of valid parameters that are allowed for this usage.
                            The config dict is allowed to have extra items, but kwargs is not.

    :returns:               The merged dict, including only items that are in valid_params.
    """
    if kwargs is None:
        kwargs = {}
    if config:
        for key, value in config.items():
            if key in valid_params and key not in kwargs:
                kwargs[key] = value
    return check_config(kwargs, valid_params)

def make_minimal_config(config, valid_params):
    """Make a minimal version of a config dict, excluding any values that are the default.

    :param config:          The source config (will not be modified)
    :param valid_params:    A dict of valid parameters that are allowed for this usage.

    :returns:               The minimal dict, including only items that differ from the defaults.
    """
    return { k:v for k,v in config.items() if k in valid_params and v != valid_params[k][2] }
