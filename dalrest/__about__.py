__version__ = "0.1.0"
__description__ = "dalrest : generic nested REST api over an entity data layer, Flask-Restful"
