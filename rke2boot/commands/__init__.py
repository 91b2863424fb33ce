from . import config, credentials, install, status

__all__ = ['config', 'credentials', 'install', 'status']
