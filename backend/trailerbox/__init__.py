"""
🎬 TrailerBox - IMDb × AcFun 預告片對照站
提交佇列、審核交易與管理員目錄的持久層核心。
"""

__version__ = "1.0.0"
