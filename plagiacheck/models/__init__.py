# -*- coding: utf-8 -*-
from plagiacheck.infra import db

from .user import User
from .package import Package, PackageStatus
from .payment import Payment, PaymentType
from .purchased_token import PurchasedToken
from .one_time_token import OneTimeToken
from .voucher import Voucher
from .affiliate import Affiliate
from .operation_log import OperationLog
